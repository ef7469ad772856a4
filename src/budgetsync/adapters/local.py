"""Persistence adapter for local-only mode.

The Local Store is the durable copy here, so every call writes straight
through it. Calls never fail for storage reasons; they only report records
that do not exist and patches that do not fit the entity.
"""

from typing import Any, Optional

from budgetsync.adapters.base import AdapterResult, PersistenceAdapter
from budgetsync.domain.entities import Collection, StorageMode
from budgetsync.domain.errors import DomainError, record_not_found
from budgetsync.store.local_store import LocalStore
from budgetsync.utils.records import apply_patch


class LocalPersistenceAdapter(PersistenceAdapter):
    """Adapter writing to the active dataset of a LocalStore."""

    mode = StorageMode.LOCAL

    def __init__(self, store: LocalStore):
        """Initialize the adapter.

        Args:
            store: Local store holding the durable document
        """
        self.store = store

    @property
    def dataset_id(self) -> str:
        return self.store.active_id

    async def create(self, collection: Collection, record) -> AdapterResult:
        if self.store.get_record(collection, record.id) is None:
            self.store.insert_record(collection, record)
        return AdapterResult.success(record)

    async def update(self, collection: Collection, record_id: str, patch: dict[str, Any]) -> AdapterResult:
        existing = self.store.get_record(collection, record_id)
        if existing is None:
            return AdapterResult.missing(record_not_found(collection.value, record_id))
        try:
            updated = apply_patch(existing, patch)
        except DomainError as e:
            return AdapterResult.failure(e)
        self.store.replace_record(collection, updated)
        return AdapterResult.success(updated)

    async def remove(self, collection: Collection, record_id: str) -> AdapterResult:
        if self.store.remove_record(collection, record_id) is None:
            return AdapterResult.missing(record_not_found(collection.value, record_id))
        return AdapterResult.success()

    async def bulk_create(self, collection: Collection, records: list) -> AdapterResult:
        known = {r.id for r in self.store.get_active().records(collection)}
        fresh = [r for r in records if r.id not in known]
        if fresh:
            current = self.store.get_active().records(collection)
            self.store.set_active(**{collection.value: current + fresh})
        return AdapterResult.success(list(records))

    async def list(self, collection: Collection, filters: Optional[dict[str, Any]] = None) -> AdapterResult:
        records = self.store.get_active().records(collection)
        if filters:
            records = [
                r for r in records
                if all(getattr(r, name, None) == value for name, value in filters.items())
            ]
        return AdapterResult.success(records)
