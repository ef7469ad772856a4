"""Shared import pipeline: reconcile incoming records and write the batch."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from budgetsync.domain.entities import Transaction
from budgetsync.domain.errors import DomainError
from budgetsync.domain.mutations import OptimisticMutationController
from budgetsync.domain.reconciliation import InvalidRecord, ReconciliationEngine

logger = logging.getLogger(__name__)


class ImportStatus(str, Enum):
    """Overall outcome of an import."""

    COMPLETED = "completed"
    NOTHING_NEW = "nothing_new"
    NO_VALID_RECORDS = "no_valid_records"
    FAILED = "failed"
    STALE = "stale"


@dataclass
class ImportResult:
    """Counts reported for every import, whatever its outcome."""

    status: ImportStatus
    accepted: int = 0
    updated: int = 0
    duplicates: int = 0
    invalid: int = 0
    batch_id: Optional[str] = None
    invalid_records: list[InvalidRecord] = field(default_factory=list)
    error: Optional[DomainError] = None

    def summary(self) -> str:
        """One-line human readable report."""
        text = (
            f"{self.accepted} imported, {self.updated} updated, "
            f"{self.duplicates} duplicate(s) skipped, {self.invalid} invalid skipped"
        )
        if self.status is ImportStatus.NO_VALID_RECORDS:
            return f"No valid records found ({text})"
        if self.status is ImportStatus.FAILED:
            return f"Import failed: {self.error} ({text})"
        return text


async def write_import(
    controller: OptimisticMutationController,
    engine: ReconciliationEngine,
    records: list[Transaction],
    invalid: Optional[list[InvalidRecord]] = None,
) -> ImportResult:
    """Reconcile records against the active dataset and write the result.

    Args:
        controller: Controller writing to the active dataset
        engine: Reconciliation engine
        records: Parsed incoming records
        invalid: Records already rejected by the parser

    Returns:
        ImportResult with accepted, updated, duplicate and invalid counts
    """
    invalid = list(invalid or [])
    if not records:
        logger.info("Import has no valid records (%d invalid)", len(invalid))
        return ImportResult(
            status=ImportStatus.NO_VALID_RECORDS, invalid=len(invalid), invalid_records=invalid
        )

    data = controller.store.get_active()
    decision = engine.reconcile(records, data.transactions, data.categories)
    invalid.extend(decision.invalid)
    result = ImportResult(
        status=ImportStatus.COMPLETED,
        duplicates=len(decision.duplicates),
        invalid=len(invalid),
        invalid_records=invalid,
    )

    if not decision.accepted and not decision.updated:
        result.status = (
            ImportStatus.NOTHING_NEW if decision.duplicates else ImportStatus.NO_VALID_RECORDS
        )
        return result

    batch = await controller.import_batch(decision.accepted, decision.updated)
    result.batch_id = batch.batch_id
    result.accepted = len(batch.accepted)
    result.updated = len(batch.updated)
    if batch.stale:
        result.status = ImportStatus.STALE
    elif not batch.ok:
        result.status = ImportStatus.FAILED
        result.error = batch.error
    logger.info("Import %s: %s", batch.batch_id, result.summary())
    return result
