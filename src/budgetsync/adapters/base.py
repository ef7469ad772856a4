"""Uniform persistence interface over local-only and remote-backed storage."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

# Import entities directly to avoid circular import through domain/__init__.py
from budgetsync.domain.entities import Collection, StorageMode
from budgetsync.domain.errors import DomainError, NotFoundError, PermissionDeniedError


class Outcome(str, Enum):
    """How a persistence call ended."""

    SUCCESS = "success"
    ERROR = "error"
    DENIED = "denied"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class AdapterResult:
    """Result of a persistence call: ``data`` on success, ``error`` otherwise.

    A call that returned no rows under a visibility rule has outcome DENIED
    and carries a PermissionDeniedError even though the remote store never
    reported an error.
    """

    data: Any = None
    error: Optional[DomainError] = None
    outcome: Outcome = Outcome.SUCCESS

    @property
    def ok(self) -> bool:
        """True if the call succeeded."""
        return self.outcome is Outcome.SUCCESS

    @property
    def denied(self) -> bool:
        """True if a permission or visibility rule blocked the call."""
        return self.outcome is Outcome.DENIED

    @classmethod
    def success(cls, data: Any = None) -> "AdapterResult":
        return cls(data=data)

    @classmethod
    def failure(cls, error: DomainError) -> "AdapterResult":
        return cls(error=error, outcome=Outcome.ERROR)

    @classmethod
    def denial(cls, message: str) -> "AdapterResult":
        return cls(error=PermissionDeniedError(message), outcome=Outcome.DENIED)

    @classmethod
    def missing(cls, message: str) -> "AdapterResult":
        return cls(error=NotFoundError(message), outcome=Outcome.NOT_FOUND)


class PersistenceAdapter(ABC):
    """Create/read/update/delete interface shared by local and remote storage.

    Every method returns an AdapterResult instead of raising for storage
    failures. Callers must check ``error`` and must also treat a DENIED
    outcome as a denial, distinct from an error.
    """

    mode: StorageMode

    @property
    @abstractmethod
    def dataset_id(self) -> str:
        """Dataset the adapter reads and writes."""
        pass

    @abstractmethod
    async def create(self, collection: Collection, record) -> AdapterResult:
        """Create a record. Data is the stored record."""
        pass

    @abstractmethod
    async def update(self, collection: Collection, record_id: str, patch: dict[str, Any]) -> AdapterResult:
        """Update fields of a record. Data is the stored record."""
        pass

    @abstractmethod
    async def remove(self, collection: Collection, record_id: str) -> AdapterResult:
        """Delete a record."""
        pass

    @abstractmethod
    async def bulk_create(self, collection: Collection, records: list) -> AdapterResult:
        """Create several records at once. Data is the list of stored records."""
        pass

    # Defined last: the name shadows the builtin inside the class body
    @abstractmethod
    async def list(self, collection: Collection, filters: Optional[dict[str, Any]] = None) -> AdapterResult:
        """List records, optionally filtered by field equality. Data is a list."""
        pass
