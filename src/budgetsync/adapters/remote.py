"""Persistence adapter backed by the remote store."""

import logging
from typing import Any, Optional

from budgetsync.adapters.base import AdapterResult, PersistenceAdapter
from budgetsync.adapters.client import RemoteClient, RemoteError, RemoteResponse
from budgetsync.adapters.mappers import patch_to_wire, record_from_wire, record_to_wire
from budgetsync.domain.entities import Collection, StorageMode
from budgetsync.domain.errors import (
    ConflictError,
    DomainError,
    TransientNetworkError,
    ValidationError,
    record_not_found,
)

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE codes surfaced by the remote store
_UNIQUE_VIOLATION = "23505"
_INSUFFICIENT_PRIVILEGE = "42501"


def classify_remote_error(error: RemoteError) -> AdapterResult:
    """Map an explicit remote error to a typed adapter result."""
    if error.code == _INSUFFICIENT_PRIVILEGE or error.status in (401, 403):
        return AdapterResult.denial(error.message)
    if error.status == 404:
        return AdapterResult.missing(error.message)
    if error.code == _UNIQUE_VIOLATION or error.status == 409:
        return AdapterResult.failure(ConflictError(error.message))
    if error.status in (400, 422) or (error.code or "").startswith("22"):
        return AdapterResult.failure(ValidationError(error.message))
    return AdapterResult.failure(TransientNetworkError(error.message))


class RemotePersistenceAdapter(PersistenceAdapter):
    """Adapter that writes through a RemoteClient for one dataset.

    Every remote call is wrapped: a raised transport error becomes an ERROR
    result, and a write that comes back without data becomes DENIED or
    NOT_FOUND depending on whether the record is still visible.
    """

    mode = StorageMode.REMOTE

    def __init__(self, client: RemoteClient, dataset_id: str, actor_id: str):
        """Initialize the adapter.

        Args:
            client: Remote store client
            dataset_id: Dataset every call is scoped to
            actor_id: User recorded as the author of created records
        """
        self.client = client
        self._dataset_id = dataset_id
        self.actor_id = actor_id

    @property
    def dataset_id(self) -> str:
        return self._dataset_id

    async def _call(self, action: str, coro) -> tuple[Optional[RemoteResponse], Optional[AdapterResult]]:
        """Await a client call, converting raised errors into an ERROR result."""
        try:
            return await coro, None
        except DomainError as e:
            logger.warning("Remote %s failed: %s", action, e)
            return None, AdapterResult.failure(e)
        except Exception as e:
            logger.warning("Remote %s failed: %s", action, e)
            return None, AdapterResult.failure(TransientNetworkError(f"Network error during {action}: {e}"))

    def _explicit_error(self, action: str, response: RemoteResponse) -> Optional[AdapterResult]:
        if response.error is None:
            return None
        result = classify_remote_error(response.error)
        logger.warning("Remote %s returned an error (%s): %s", action, result.outcome.value, response.error.message)
        return result

    async def _denied_or_missing(self, collection: Collection, record_id: str, action: str) -> AdapterResult:
        """Tell a visibility denial apart from a concurrently deleted record.

        The record is looked up again by ID. If it is still visible the write
        was denied; if it is gone it was deleted. An inconclusive lookup is
        reported as a denial.
        """
        response, failed = await self._call(
            f"{action} follow-up", self.client.list_records(collection.value, self._dataset_id, {"id": record_id})
        )
        if failed is None and response.error is None and response.data is not None and not response.data:
            logger.warning("Remote %s affected no rows: %s %s no longer exists", action, collection.value, record_id)
            return AdapterResult.missing(record_not_found(collection.value, record_id))
        logger.warning("Remote %s affected no rows: denied on %s %s", action, collection.value, record_id)
        return AdapterResult.denial(f"Not allowed to {action} {collection.value} record '{record_id}'")

    async def create(self, collection: Collection, record) -> AdapterResult:
        response, failed = await self._call(
            "create",
            self.client.create_record(
                collection.value, self._dataset_id, self.actor_id, record_to_wire(collection, record)
            ),
        )
        if failed is not None:
            return failed
        error = self._explicit_error("create", response)
        if error is not None:
            return error
        if not response.data:
            # A freshly inserted row cannot have been deleted by anyone else
            logger.warning("Remote create returned no row for %s", collection.value)
            return AdapterResult.denial(f"Not allowed to create {collection.value} records in this dataset")
        return AdapterResult.success(record_from_wire(collection, _single(response.data)))

    async def update(self, collection: Collection, record_id: str, patch: dict[str, Any]) -> AdapterResult:
        response, failed = await self._call(
            "update", self.client.update_record(collection.value, record_id, patch_to_wire(collection, patch))
        )
        if failed is not None:
            return failed
        error = self._explicit_error("update", response)
        if error is not None:
            return error
        if not response.data:
            return await self._denied_or_missing(collection, record_id, "update")
        return AdapterResult.success(record_from_wire(collection, _single(response.data)))

    async def remove(self, collection: Collection, record_id: str) -> AdapterResult:
        response, failed = await self._call("delete", self.client.delete_record(collection.value, record_id))
        if failed is not None:
            return failed
        error = self._explicit_error("delete", response)
        if error is not None:
            return error
        if response.count == 0:
            return await self._denied_or_missing(collection, record_id, "delete")
        return AdapterResult.success()

    async def bulk_create(self, collection: Collection, records: list) -> AdapterResult:
        if not records:
            return AdapterResult.success([])
        response, failed = await self._call(
            "bulk create",
            self.client.bulk_create(
                collection.value,
                self._dataset_id,
                self.actor_id,
                [record_to_wire(collection, record) for record in records],
            ),
        )
        if failed is not None:
            return failed
        error = self._explicit_error("bulk create", response)
        if error is not None:
            return error
        if not response.data or len(response.data) != len(records):
            returned = len(response.data or [])
            logger.warning(
                "Remote bulk create of %d %s returned %d row(s)", len(records), collection.value, returned
            )
            return AdapterResult.denial(
                f"Not allowed to import {collection.value} into this dataset "
                f"({returned} of {len(records)} stored)"
            )
        return AdapterResult.success([record_from_wire(collection, raw) for raw in response.data])

    async def list(self, collection: Collection, filters: Optional[dict[str, Any]] = None) -> AdapterResult:
        response, failed = await self._call(
            "list", self.client.list_records(collection.value, self._dataset_id, filters)
        )
        if failed is not None:
            return failed
        error = self._explicit_error("list", response)
        if error is not None:
            return error
        if response.data is None:
            logger.warning("Remote list of %s returned no data", collection.value)
            return AdapterResult.denial(f"Not allowed to read {collection.value} of this dataset")
        try:
            records = [record_from_wire(collection, raw) for raw in response.data]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Remote list of %s returned malformed rows: %s", collection.value, e)
            return AdapterResult.failure(ValidationError(f"Malformed {collection.value} rows: {e}"))
        return AdapterResult.success(records)


def _single(data: Any) -> dict[str, Any]:
    """Return the one row of a response that may be a row or a list of rows."""
    if isinstance(data, list):
        return data[0]
    return data

