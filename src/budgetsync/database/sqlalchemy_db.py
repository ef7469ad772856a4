"""Generic SQLAlchemy storage implementation."""

from typing import Optional
from sqlalchemy.orm import Session

from budgetsync.database.base import DocumentStorage
from budgetsync.database.models import (
    StoredDocument,
    QuarantinedDocument,
    Preference,
    create_session_factory,
)
from budgetsync.database.mappers import quarantined_document_to_domain
from budgetsync.domain.entities import QuarantinedDocument as DomainQuarantinedDocument


class SQLAlchemyStorage(DocumentStorage):
    """SQLAlchemy-based implementation of DocumentStorage interface."""

    def __init__(self, database_url: str):
        """Initialize SQLAlchemy storage.

        Args:
            database_url: SQLAlchemy database URL (e.g., 'sqlite:///path/to.db',
                'sqlite://' for an in-memory database)
        """
        self.database_url = database_url
        self.session_factory = create_session_factory(database_url)
        self._session: Optional[Session] = None

    def _get_session(self) -> Session:
        """Get current session, creating one if needed."""
        if self._session is None:
            self._session = self.session_factory()
        return self._session

    def connect(self) -> None:
        """Connect to the database."""
        # Connection is lazy, so this is a no-op
        pass

    def disconnect(self) -> None:
        """Disconnect from the database."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        # Schema is created automatically by create_session_factory
        pass

    # Document operations
    def load_document(self, key: str) -> Optional[str]:
        """Return the serialized document stored under key, if any."""
        session = self._get_session()
        document = session.get(StoredDocument, key)
        if document is None:
            return None
        return document.payload

    def save_document(self, key: str, payload: str) -> None:
        """Store (insert or replace) the serialized document under key."""
        session = self._get_session()
        document = session.get(StoredDocument, key)
        if document is None:
            session.add(StoredDocument(key=key, payload=payload))
        else:
            document.payload = payload
        session.commit()

    def delete_document(self, key: str) -> None:
        """Remove the document stored under key."""
        session = self._get_session()
        document = session.get(StoredDocument, key)
        if document is not None:
            session.delete(document)
            session.commit()

    def quarantine_document(self, key: str, payload: str, reason: str) -> int:
        """Keep a copy of an unreadable document. Returns quarantine ID."""
        session = self._get_session()
        quarantined = QuarantinedDocument(key=key, payload=payload, reason=reason)
        session.add(quarantined)
        session.commit()
        return quarantined.id

    def list_quarantined(self, key: Optional[str] = None) -> list[DomainQuarantinedDocument]:
        """List quarantined documents, optionally filtered by key."""
        session = self._get_session()
        query = session.query(QuarantinedDocument)
        if key is not None:
            query = query.filter(QuarantinedDocument.key == key)
        documents = query.order_by(QuarantinedDocument.id).all()
        return [quarantined_document_to_domain(doc) for doc in documents]

    # Preference operations
    def get_preference(self, name: str) -> Optional[str]:
        """Get a stored preference value."""
        session = self._get_session()
        preference = session.get(Preference, name)
        if preference is None:
            return None
        return preference.value

    def set_preference(self, name: str, value: str) -> None:
        """Store a preference value."""
        session = self._get_session()
        preference = session.get(Preference, name)
        if preference is None:
            session.add(Preference(name=name, value=value))
        else:
            preference.value = value
        session.commit()

    def delete_preference(self, name: str) -> None:
        """Remove a preference. Missing preferences are ignored."""
        session = self._get_session()
        preference = session.get(Preference, name)
        if preference is not None:
            session.delete(preference)
            session.commit()
