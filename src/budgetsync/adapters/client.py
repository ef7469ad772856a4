"""Contract of the remote multi-tenant store consumed by the sync core.

The remote store enforces row-level visibility rules. A write or read blocked
by such a rule does not report an error; it simply returns no rows. Adapters
built on this contract must infer denials from missing data.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class RemoteError:
    """Error object reported by the remote store."""

    message: str
    code: Optional[str] = None
    status: Optional[int] = None


@dataclass(frozen=True)
class RemoteResponse:
    """Raw response of a remote call: ``data`` or ``error``.

    ``count`` is the number of affected rows when the remote store reports
    it (deletes); None means unknown.
    """

    data: Any = None
    error: Optional[RemoteError] = None
    count: Optional[int] = None


class RemoteClient(ABC):
    """Abstract remote store client.

    Implementations may raise on transport failure (connection reset,
    timeout). Record dictionaries use the snake_case wire format produced by
    ``budgetsync.adapters.mappers``.
    """

    @abstractmethod
    async def create_record(
        self, collection: str, dataset_id: str, actor_id: str, record: dict[str, Any]
    ) -> RemoteResponse:
        """Insert one record and return it as stored."""
        pass

    @abstractmethod
    async def update_record(self, collection: str, record_id: str, patch: dict[str, Any]) -> RemoteResponse:
        """Update one record and return it as stored."""
        pass

    @abstractmethod
    async def delete_record(self, collection: str, record_id: str) -> RemoteResponse:
        """Delete one record."""
        pass

    @abstractmethod
    async def list_records(
        self, collection: str, dataset_id: str, filters: Optional[dict[str, Any]] = None
    ) -> RemoteResponse:
        """List the records of a dataset visible to the caller."""
        pass

    @abstractmethod
    async def bulk_create(
        self, collection: str, dataset_id: str, actor_id: str, records: list[dict[str, Any]]
    ) -> RemoteResponse:
        """Insert several records in one call and return them as stored."""
        pass

    @abstractmethod
    async def list_accessible_datasets(self, user_id: str) -> RemoteResponse:
        """List datasets the user is a member of.

        Data is a list of ``{"id", "name", "type", "owner_id"}`` dictionaries.
        """
        pass

    @abstractmethod
    async def create_dataset(self, name: str, kind: str, owner_id: str) -> RemoteResponse:
        """Create a dataset owned by the user and return it."""
        pass

    @abstractmethod
    async def list_memberships(self, dataset_id: str) -> RemoteResponse:
        """List ``{"dataset_id", "user_id", "role"}`` rows of a dataset."""
        pass
