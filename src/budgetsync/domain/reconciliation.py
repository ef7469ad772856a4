"""Import reconciliation: decide whether incoming records are new, updates or duplicates.

Incoming records come from the CSV parser or the bank-feed importer, already
shaped as Transaction entities. Nothing here writes; the caller applies the
decisions through the mutation controller.
"""

import logging
from dataclasses import dataclass, field, fields, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from budgetsync.domain.constants import MAX_AMOUNT
from budgetsync.domain.defaults import fallback_category
from budgetsync.domain.entities import Category, Transaction
from budgetsync.domain.errors import amount_too_large

logger = logging.getLogger(__name__)

# Fields refreshed from the source when a record matches by external ID
REFRESHED_FIELDS = ("date", "type", "amount", "description", "account_id")


def normalize_description(text: Optional[str]) -> str:
    """Lowercase a description and collapse runs of whitespace."""
    return " ".join((text or "").split()).lower()


def to_minor_units(amount) -> int:
    """Convert an amount to integer cents, rounding half away from zero.

    Accepts Decimal, int, float or numeric strings; floats are converted via
    their shortest string form so that 12.5 and "12.50" agree.
    """
    cents = (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


def fingerprint(record: Transaction) -> str:
    """Return the duplicate-detection key of a transaction.

    The key combines the calendar day, the type, the amount in cents and the
    normalized description. It is never stored.
    """
    return "|".join(
        [
            record.date.isoformat(),
            record.type.value,
            str(to_minor_units(record.amount)),
            normalize_description(record.description),
        ]
    )


@dataclass(frozen=True)
class RecordUpdate:
    """An existing record refreshed from a re-imported source record."""

    existing: Transaction
    refreshed: Transaction

    @property
    def changes(self) -> dict[str, Any]:
        """Fields whose value differs between the two versions."""
        return {
            f.name: getattr(self.refreshed, f.name)
            for f in fields(Transaction)
            if getattr(self.refreshed, f.name) != getattr(self.existing, f.name)
        }


@dataclass(frozen=True)
class InvalidRecord:
    """A record or row rejected with a reason."""

    label: str
    reason: str


@dataclass
class ReconciliationResult:
    """Per-record decisions for one incoming batch."""

    accepted: list[Transaction] = field(default_factory=list)
    updated: list[RecordUpdate] = field(default_factory=list)
    duplicates: list[Transaction] = field(default_factory=list)
    invalid: list[InvalidRecord] = field(default_factory=list)


def _label(record: Transaction) -> str:
    return f"{record.date.isoformat()} {record.description} {record.amount}"


class ReconciliationEngine:
    """Merges incoming transactions against the ones already known."""

    def __init__(self, max_amount: Decimal = MAX_AMOUNT):
        """Initialize the engine.

        Args:
            max_amount: Amounts at or above this magnitude are rejected
        """
        self.max_amount = max_amount

    def reconcile(
        self,
        incoming: list[Transaction],
        existing: list[Transaction],
        categories: list[Category],
    ) -> ReconciliationResult:
        """Classify every incoming record.

        A record sharing an external ID with an existing one refreshes that
        record; its category is only replaced when the existing category is
        missing or no longer valid. Otherwise a record whose fingerprint
        matches an existing record, or one accepted earlier in the batch, is
        a duplicate. Anything else is accepted.

        Args:
            incoming: Records to import, in source order
            existing: Transactions of the active dataset
            categories: Categories of the active dataset

        Returns:
            ReconciliationResult with accepted, updated, duplicate and
            invalid records
        """
        result = ReconciliationResult()
        valid_categories = {c.id for c in categories}
        fallback = fallback_category(categories)
        known = {fingerprint(t) for t in existing}
        by_external_id = {t.external_id: t for t in existing if t.external_id}
        seen: set[str] = set()
        seen_external_ids: set[str] = set()

        for record in incoming:
            if record.amount >= self.max_amount:
                result.invalid.append(InvalidRecord(_label(record), amount_too_large(self.max_amount)))
                continue

            if record.category_id not in valid_categories:
                record = replace(record, category_id=fallback.id if fallback else None)

            if record.external_id:
                if record.external_id in seen_external_ids:
                    result.duplicates.append(record)
                    continue
                seen_external_ids.add(record.external_id)
                match = by_external_id.get(record.external_id)
                if match is not None:
                    refreshed = self._refresh(match, record, valid_categories)
                    seen.add(fingerprint(refreshed))
                    if refreshed == match:
                        result.duplicates.append(record)
                    else:
                        result.updated.append(RecordUpdate(existing=match, refreshed=refreshed))
                    continue

            key = fingerprint(record)
            if key in known or key in seen:
                result.duplicates.append(record)
                continue
            seen.add(key)
            result.accepted.append(record)

        logger.debug(
            "Reconciled %d record(s): %d accepted, %d updated, %d duplicate, %d invalid",
            len(incoming),
            len(result.accepted),
            len(result.updated),
            len(result.duplicates),
            len(result.invalid),
        )
        return result

    @staticmethod
    def _refresh(existing: Transaction, source: Transaction, valid_categories: set[str]) -> Transaction:
        changes = {name: getattr(source, name) for name in REFRESHED_FIELDS}
        if existing.category_id is None or existing.category_id not in valid_categories:
            changes["category_id"] = source.category_id
        return replace(existing, **changes)
