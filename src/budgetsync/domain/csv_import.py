"""CSV import domain service."""

import asyncio
import logging
from typing import Optional

from budgetsync.domain.csv_parser import CSVStatementParser, ParseResult
from budgetsync.domain.importing import ImportResult, write_import
from budgetsync.domain.mutations import OptimisticMutationController
from budgetsync.domain.reconciliation import InvalidRecord, ReconciliationEngine

logger = logging.getLogger(__name__)


class CSVImportService:
    """Service for importing statement CSV files into the active dataset."""

    def __init__(
        self,
        controller: OptimisticMutationController,
        engine: Optional[ReconciliationEngine] = None,
    ):
        """Initialize CSV import service.

        Args:
            controller: Mutation controller writing to the active dataset
            engine: Reconciliation engine, default limits if omitted
        """
        self.controller = controller
        self.engine = engine or ReconciliationEngine()

    def _parser(self) -> CSVStatementParser:
        return CSVStatementParser(self.controller.store.get_active().categories)

    async def import_file(self, csv_file_path: str) -> ImportResult:
        """Import transactions from a CSV file.

        Args:
            csv_file_path: Path to CSV file

        Returns:
            ImportResult with accepted, updated, duplicate and invalid counts

        Raises:
            FileNotFoundError: If CSV file doesn't exist
        """
        parser = self._parser()
        parsed = await asyncio.to_thread(parser.parse_file, csv_file_path)
        logger.info("Importing %s", csv_file_path)
        return await self._write(parsed)

    async def import_text(self, text: str) -> ImportResult:
        """Import transactions from CSV text."""
        return await self._write(self._parser().parse_text(text))

    async def _write(self, parsed: ParseResult) -> ImportResult:
        invalid = [
            InvalidRecord(label=f"row {e.row_number}" if e.row_number else "row", reason=str(e))
            for e in parsed.errors
        ]
        return await write_import(self.controller, self.engine, parsed.records, invalid)
