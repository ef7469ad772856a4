"""Bank-feed import.

The feed is consumed through a BankFeedSource. A source still processing a
freshly linked account reports SourceNotReadyError; that fetch is retried
with exponential backoff up to a fixed ceiling, after which the user is
asked to try again later.
"""

import logging
from abc import ABC, abstractmethod
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from budgetsync.domain.constants import SyncSettings
from budgetsync.domain.entities import Transaction, TransactionType
from budgetsync.domain.errors import (
    ImportFormatError,
    SourceNotReadyError,
    TransientNetworkError,
    source_not_ready,
)
from budgetsync.domain.importing import ImportResult, ImportStatus, write_import
from budgetsync.domain.mutations import OptimisticMutationController
from budgetsync.domain.notices import NoticeKind
from budgetsync.domain.reconciliation import InvalidRecord, ReconciliationEngine
from budgetsync.utils.date_parser import parse_statement_date
from budgetsync.utils.ids import new_local_id

logger = logging.getLogger(__name__)


class BankFeedSource(ABC):
    """Source of raw bank-feed transactions."""

    @abstractmethod
    async def fetch_transactions(
        self, start_date: date, end_date: date, account_ids: Optional[list[str]] = None
    ) -> list[dict[str, Any]]:
        """Fetch feed transactions dated within a window.

        Raises:
            SourceNotReadyError: If the feed is still processing
            TransientNetworkError: If the feed could not be reached
        """
        pass


def normalize_bank_record(raw: dict[str, Any]) -> Transaction:
    """Convert a raw feed transaction to a Transaction.

    Feed amounts are positive for money out and negative for money in. The
    feed's transaction ID becomes the external ID.

    Raises:
        ImportFormatError: If the record lacks an ID, a date or an amount
    """
    external_id = raw.get("transaction_id")
    if not external_id:
        raise ImportFormatError("Bank record has no transaction ID")
    try:
        txn_date = parse_statement_date(str(raw["date"]))
        signed = Decimal(str(raw["amount"]))
    except (KeyError, ValueError, InvalidOperation) as e:
        raise ImportFormatError(f"Bank record {external_id}: {e}") from e
    if not signed.is_finite():
        raise ImportFormatError(f"Bank record {external_id}: amount is not a number")

    labels = raw.get("category") or []
    return Transaction(
        id=new_local_id("bank"),
        date=txn_date,
        type=TransactionType.EXPENSE if signed > 0 else TransactionType.INCOME,
        amount=abs(signed),
        description=raw.get("name") or raw.get("merchant_name") or "Unknown",
        merchant=raw.get("merchant_name"),
        notes=", ".join(labels) if labels else None,
        external_id=str(external_id),
        account_id=raw.get("account_id"),
    )


class BankImportService:
    """Service importing recent bank-feed transactions into the active dataset."""

    def __init__(
        self,
        source: BankFeedSource,
        controller: OptimisticMutationController,
        engine: Optional[ReconciliationEngine] = None,
        settings: Optional[SyncSettings] = None,
    ):
        """Initialize bank import service.

        Args:
            source: Bank feed
            controller: Mutation controller writing to the active dataset
            engine: Reconciliation engine
            settings: Retry ceiling, backoff and history window
        """
        self.source = source
        self.controller = controller
        self.settings = settings or SyncSettings()
        self.engine = engine or ReconciliationEngine(self.settings.max_amount)

    async def fetch_with_retry(
        self, start_date: date, end_date: date, account_ids: Optional[list[str]] = None
    ) -> list[dict[str, Any]]:
        """Fetch from the feed, retrying while it is not ready.

        Raises:
            SourceNotReadyError: If the feed is still not ready after the
                last retry
            TransientNetworkError: If the feed stays unreachable
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.import_max_retries + 1),
            wait=wait_exponential(multiplier=self.settings.import_base_delay),
            retry=retry_if_exception_type((SourceNotReadyError, TransientNetworkError)),
            before_sleep=before_sleep_log(logger, logging.INFO),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self.source.fetch_transactions(start_date, end_date, account_ids)
        except RetryError as e:
            last = e.last_attempt.exception()
            if isinstance(last, SourceNotReadyError):
                raise SourceNotReadyError(source_not_ready(last.request_id), last.request_id) from last
            raise last from e
        return []

    async def import_recent(
        self, account_ids: Optional[list[str]] = None, today: Optional[date] = None
    ) -> ImportResult:
        """Import the feed's transactions of the configured history window.

        Args:
            account_ids: Only import these feed accounts
            today: End of the window, defaults to the current date

        Returns:
            ImportResult; a feed that never became ready gives status FAILED
            and a notice asking the user to retry later
        """
        end_date = today or date.today()
        start_date = end_date - timedelta(days=self.settings.bank_history_days)
        notices = self.controller.notices

        try:
            raw_records = await self.fetch_with_retry(start_date, end_date, account_ids)
        except SourceNotReadyError as e:
            logger.warning("Bank feed still not ready after %d retries", self.settings.import_max_retries)
            notices.post(NoticeKind.INFO, "Bank import", str(e), action="retry")
            return ImportResult(status=ImportStatus.FAILED, error=e)
        except TransientNetworkError as e:
            logger.warning("Bank feed unreachable: %s", e)
            notices.post(NoticeKind.ERROR, "Could not import bank transactions", str(e), action="retry")
            return ImportResult(status=ImportStatus.FAILED, error=e)

        if not raw_records:
            notices.post(
                NoticeKind.INFO,
                "Bank import",
                f"No transactions found in the last {self.settings.bank_history_days} days.",
            )
            return ImportResult(status=ImportStatus.NO_VALID_RECORDS)

        records = []
        invalid = []
        for raw in raw_records:
            try:
                records.append(normalize_bank_record(raw))
            except ImportFormatError as e:
                invalid.append(InvalidRecord(label=str(raw.get("transaction_id") or "bank record"), reason=str(e)))

        logger.info("Fetched %d bank record(s) from %s to %s", len(raw_records), start_date, end_date)
        return await write_import(self.controller, self.engine, records, invalid)
