"""Abstract storage interface for the local document and preferences."""

from abc import ABC, abstractmethod
from typing import Optional

# Import entities directly to avoid circular import through domain/__init__.py
from budgetsync.domain.entities import QuarantinedDocument


class DocumentStorage(ABC):
    """Durable storage behind the local store.

    Holds the serialized multi-dataset document, quarantined copies of
    documents that failed to parse, and small string preferences such as
    the remote-mode active dataset pointer.
    """

    @abstractmethod
    def connect(self) -> None:
        """Connect to the storage backend."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the storage backend."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize storage schema (create tables)."""
        pass

    # Document operations
    @abstractmethod
    def load_document(self, key: str) -> Optional[str]:
        """Return the serialized document stored under key, if any."""
        pass

    @abstractmethod
    def save_document(self, key: str, payload: str) -> None:
        """Store (insert or replace) the serialized document under key."""
        pass

    @abstractmethod
    def delete_document(self, key: str) -> None:
        """Remove the document stored under key."""
        pass

    @abstractmethod
    def quarantine_document(self, key: str, payload: str, reason: str) -> int:
        """Keep a copy of an unreadable document. Returns quarantine ID."""
        pass

    @abstractmethod
    def list_quarantined(self, key: Optional[str] = None) -> list[QuarantinedDocument]:
        """List quarantined documents, optionally filtered by key."""
        pass

    # Preference operations
    @abstractmethod
    def get_preference(self, name: str) -> Optional[str]:
        """Get a stored preference value."""
        pass

    @abstractmethod
    def set_preference(self, name: str, value: str) -> None:
        """Store a preference value."""
        pass

    @abstractmethod
    def delete_preference(self, name: str) -> None:
        """Remove a preference. Missing preferences are ignored."""
        pass
