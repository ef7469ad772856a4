"""Profile-keyed local store.

Holds every known dataset's collections in memory, exposes accessors scoped
to the active dataset and emits change events on every mutation. In local
mode the whole document is re-persisted on each mutation; in remote mode the
store is a read cache and persistence is skipped.

All methods are synchronous. Nothing here awaits, so a mutation can never be
observed half-applied by another task on the event loop.
"""

import copy
import logging
from dataclasses import fields, replace
from typing import Any, Optional

from budgetsync.database.base import DocumentStorage
from budgetsync.domain.constants import DEFAULT_DATASET_ID, DEFAULT_DATASET_NAME
from budgetsync.domain.defaults import default_dataset_data, repair_category_references
from budgetsync.domain.entities import (
    Collection,
    DatasetData,
    DatasetInfo,
    DatasetKind,
    StorageMode,
    Transaction,
)
from budgetsync.domain.errors import (
    CorruptDocumentError,
    NotFoundError,
    ValidationError,
    dataset_not_found,
    record_not_found,
)
from budgetsync.store.events import EventChannel, StoreEvent
from budgetsync.store.mappers import LocalDocument, document_from_json, document_to_json
from budgetsync.utils.ids import new_local_id

logger = logging.getLogger(__name__)

DOCUMENT_KEY = "budgetDashboardState_v2_profiles"

_DATA_FIELDS = {f.name for f in fields(DatasetData)}


def _fresh_document() -> LocalDocument:
    return LocalDocument(
        datasets=[DatasetInfo(id=DEFAULT_DATASET_ID, name=DEFAULT_DATASET_NAME)],
        active_dataset_id=DEFAULT_DATASET_ID,
        data_by_dataset={DEFAULT_DATASET_ID: default_dataset_data()},
    )


class LocalStore:
    """In-memory, persisted-on-write store of datasets."""

    def __init__(
        self,
        storage: Optional[DocumentStorage] = None,
        mode: StorageMode = StorageMode.LOCAL,
        document_key: str = DOCUMENT_KEY,
    ):
        """Initialize the store with a fresh default document.

        Args:
            storage: Durable storage for the local document. None keeps the
                store purely in memory.
            mode: Local-only or remote-backed mode
            document_key: Key of the document within storage
        """
        self.storage = storage
        self.document_key = document_key
        self.events = EventChannel()
        self._mode = mode
        self._document = _fresh_document()

    # Lifecycle
    def load(self) -> None:
        """Load the persisted document (cold start).

        A document that fails to parse is quarantined in storage and replaced
        by a fresh default document.
        """
        if self._mode is StorageMode.REMOTE:
            logger.debug("Skipping local document load in remote mode")
            return
        if self.storage is None:
            return

        raw = self.storage.load_document(self.document_key)
        if raw is None:
            self._persist()
            return

        try:
            document = document_from_json(raw)
        except CorruptDocumentError as e:
            quarantine_id = self.storage.quarantine_document(self.document_key, raw, str(e))
            logger.error(
                "Local document is corrupt, quarantined as #%s and reset: %s", quarantine_id, e
            )
            self._document = _fresh_document()
            self._persist()
            self.events.emit(StoreEvent.CHANGED, self.active_id)
            return

        self._document = self._normalize(document)
        self._persist()
        self.events.emit(StoreEvent.CHANGED, self.active_id)

    def close(self) -> None:
        """Drop all subscriptions. The storage is owned by the caller."""
        self.events.clear()

    @staticmethod
    def _normalize(document: LocalDocument) -> LocalDocument:
        """Ensure structural integrity of a freshly parsed document."""
        if not document.datasets:
            document.datasets = [DatasetInfo(id=DEFAULT_DATASET_ID, name=DEFAULT_DATASET_NAME)]
        known = {d.id for d in document.datasets}
        if document.active_dataset_id not in known:
            document.active_dataset_id = document.datasets[0].id
        for dataset in document.datasets:
            if dataset.id not in document.data_by_dataset:
                document.data_by_dataset[dataset.id] = default_dataset_data()
        for dataset_id, data in document.data_by_dataset.items():
            repaired = repair_category_references(data)
            if repaired:
                logger.warning(
                    "Re-pointed %d record(s) with a missing category in dataset %s",
                    repaired,
                    dataset_id,
                )
        return document

    # Mode
    @property
    def mode(self) -> StorageMode:
        """Current storage mode."""
        return self._mode

    def set_mode(self, mode: StorageMode) -> None:
        """Switch between local-only and remote-backed mode."""
        self._mode = mode

    # Dataset-level accessors
    @property
    def active_id(self) -> str:
        """ID of the active dataset."""
        return self._document.active_dataset_id

    @property
    def datasets(self) -> list[DatasetInfo]:
        """Known datasets, in display order."""
        return list(self._document.datasets)

    @property
    def dataset_ids(self) -> list[str]:
        """IDs of the known datasets, in display order."""
        return [d.id for d in self._document.datasets]

    def get_dataset_info(self, dataset_id: str) -> Optional[DatasetInfo]:
        """Get a dataset descriptor by ID."""
        for dataset in self._document.datasets:
            if dataset.id == dataset_id:
                return dataset
        return None

    def get_active(self) -> DatasetData:
        """Return a deep copy of the active dataset's collections.

        Mutating the returned object never affects the store.
        """
        return copy.deepcopy(self._active_data())

    def has_cached_data(self, dataset_id: str) -> bool:
        """Return True if collections are held for the dataset."""
        return dataset_id in self._document.data_by_dataset

    def set_active(self, **partial: Any) -> None:
        """Merge a partial update into the active dataset.

        Args:
            partial: Collection name to new list, e.g. ``transactions=[...]``

        Raises:
            ValidationError: If a key is not a dataset collection
        """
        unknown = set(partial) - _DATA_FIELDS
        if unknown:
            raise ValidationError(f"Unknown dataset fields: {', '.join(sorted(unknown))}")
        data = self._active_data()
        for name, value in partial.items():
            setattr(data, name, list(copy.deepcopy(value)))
        self._changed(tuple(sorted(partial)))

    def switch_active(self, dataset_id: str, name: Optional[str] = None) -> None:
        """Make another dataset active.

        An unknown dataset is registered and initialized with default data.
        Emits SWITCHED, then CHANGED.
        """
        if self.get_dataset_info(dataset_id) is None:
            self._document.datasets.append(DatasetInfo(id=dataset_id, name=name or dataset_id))
        if dataset_id not in self._document.data_by_dataset:
            self._document.data_by_dataset[dataset_id] = default_dataset_data()
        self._document.active_dataset_id = dataset_id
        self._persist()
        self.events.emit(StoreEvent.SWITCHED, dataset_id)
        self.events.emit(StoreEvent.CHANGED, dataset_id)

    def create_dataset(
        self,
        name: str,
        dataset_id: Optional[str] = None,
        kind: DatasetKind = DatasetKind.PERSONAL,
        owner_id: Optional[str] = None,
    ) -> DatasetInfo:
        """Register a new dataset with default data. Does not switch to it."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Dataset name must not be empty")
        dataset_id = dataset_id or new_local_id("p")
        if self.get_dataset_info(dataset_id) is not None:
            raise ValidationError(f"Dataset '{dataset_id}' already exists")
        info = DatasetInfo(id=dataset_id, name=name, kind=kind, owner_id=owner_id)
        self._document.datasets.append(info)
        self._document.data_by_dataset[dataset_id] = default_dataset_data()
        self._persist()
        self.events.emit(StoreEvent.CHANGED, dataset_id)
        return info

    def rename_dataset(self, dataset_id: str, name: str) -> DatasetInfo:
        """Change a dataset's display name."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Dataset name must not be empty")
        for index, dataset in enumerate(self._document.datasets):
            if dataset.id == dataset_id:
                renamed = replace(dataset, name=name)
                self._document.datasets[index] = renamed
                self._persist()
                self.events.emit(StoreEvent.CHANGED, dataset_id)
                return renamed
        raise NotFoundError(dataset_not_found(dataset_id))

    def set_datasets(self, datasets: list[DatasetInfo]) -> None:
        """Replace the dataset list, e.g. with the remotely accessible budgets.

        Cached collections of datasets no longer listed are dropped, except
        for the active one, which stays until the caller switches away.
        """
        self._document.datasets = list(datasets)
        keep = {d.id for d in datasets} | {self.active_id}
        for dataset_id in list(self._document.data_by_dataset):
            if dataset_id not in keep:
                del self._document.data_by_dataset[dataset_id]
        if self.get_dataset_info(self.active_id) is None:
            self._document.datasets.append(DatasetInfo(id=self.active_id, name=self.active_id))
        self._persist()

    def drop_cache(self, dataset_id: str) -> None:
        """Forget cached collections for a dataset so the next load refetches them."""
        if dataset_id == self.active_id:
            self._document.data_by_dataset[dataset_id] = default_dataset_data()
            self._changed(())
        else:
            self._document.data_by_dataset.pop(dataset_id, None)

    # Record-level accessors on the active dataset
    def get_record(self, collection: Collection, record_id: str):
        """Get a record of the active dataset by ID, or None."""
        for record in self._active_data().records(collection):
            if record.id == record_id:
                return record
        return None

    def insert_record(self, collection: Collection, record, index: Optional[int] = None) -> None:
        """Add a record to the active dataset, optionally at a position."""
        records = self._active_data().records(collection)
        if index is None or index >= len(records):
            records.append(record)
        else:
            records.insert(index, record)
        self._changed((collection.value,))

    def replace_record(self, collection: Collection, record, previous_id: Optional[str] = None):
        """Replace a record in place. Returns the previous version.

        Args:
            previous_id: ID to replace when the record's ID changes (e.g. a
                local ID confirmed under a remote-assigned one)

        Raises:
            NotFoundError: If no record has that ID
        """
        target_id = previous_id or record.id
        records = self._active_data().records(collection)
        for index, existing in enumerate(records):
            if existing.id == target_id:
                records[index] = record
                self._changed((collection.value,))
                return existing
        raise NotFoundError(record_not_found(collection.value, target_id))

    def remove_record(self, collection: Collection, record_id: str) -> Optional[tuple[int, Any]]:
        """Remove a record. Returns (position, record) or None if absent."""
        records = self._active_data().records(collection)
        for index, existing in enumerate(records):
            if existing.id == record_id:
                del records[index]
                self._changed((collection.value,))
                return index, existing
        return None

    def apply_transaction_changes(
        self, changed: list[Transaction], removed_ids: Optional[set[str]] = None
    ) -> None:
        """Replace and remove several transactions in one change event."""
        by_id = {txn.id: txn for txn in changed}
        data = self._active_data()
        data.transactions = [
            by_id.get(txn.id, txn)
            for txn in data.transactions
            if txn.id not in (removed_ids or set())
        ]
        self._changed((Collection.TRANSACTIONS.value,))

    def add_import_batch(self, transactions: list[Transaction], batch_id: str) -> None:
        """Append imported transactions and remember their IDs for undo."""
        data = self._active_data()
        data.transactions.extend(transactions)
        data.last_import_batch_ids = [txn.id for txn in transactions]
        self._changed((Collection.TRANSACTIONS.value, "last_import_batch_ids"))
        logger.debug("Added import batch %s with %d transaction(s)", batch_id, len(transactions))

    def remove_batch(self, batch_id: str, restore_ids: Optional[list[str]] = None) -> list[Transaction]:
        """Remove every transaction tagged with an import batch ID.

        Args:
            batch_id: Import batch whose records are removed
            restore_ids: Undo pointer to put back, e.g. the one the failed
                batch replaced. When omitted the pointer is cleared if it
                referenced the batch.

        Returns:
            The removed transactions
        """
        data = self._active_data()
        removed = [txn for txn in data.transactions if txn.import_batch_id == batch_id]
        if not removed:
            return []
        removed_ids = {txn.id for txn in removed}
        data.transactions = [txn for txn in data.transactions if txn.id not in removed_ids]
        if restore_ids is not None:
            data.last_import_batch_ids = list(restore_ids)
        elif set(data.last_import_batch_ids) & removed_ids:
            data.last_import_batch_ids = []
        self._changed((Collection.TRANSACTIONS.value, "last_import_batch_ids"))
        return removed

    # Internals
    def _active_data(self) -> DatasetData:
        data = self._document.data_by_dataset.get(self.active_id)
        if data is None:
            data = default_dataset_data()
            self._document.data_by_dataset[self.active_id] = data
        return data

    def _changed(self, collections: tuple[str, ...]) -> None:
        self._persist()
        self.events.emit(StoreEvent.CHANGED, self.active_id, collections)

    def _persist(self) -> None:
        if self._mode is not StorageMode.LOCAL or self.storage is None:
            return
        self.storage.save_document(self.document_key, document_to_json(self._document))
