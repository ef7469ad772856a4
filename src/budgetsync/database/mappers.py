"""Mapper functions to convert SQLAlchemy models to domain entities."""

from budgetsync.domain import entities as domain
from budgetsync.database.models import QuarantinedDocument as ORMQuarantinedDocument


def quarantined_document_to_domain(
    orm_document: ORMQuarantinedDocument,
) -> domain.QuarantinedDocument:
    """Convert SQLAlchemy QuarantinedDocument model to domain entity."""
    return domain.QuarantinedDocument(
        id=orm_document.id,
        key=orm_document.key,
        payload=orm_document.payload,
        reason=orm_document.reason,
        quarantined_at=orm_document.quarantined_at,
    )
