"""Statement CSV parsing with column-layout sniffing.

Exports from different banks and tools put the columns in different orders
and rarely agree on a header. Each row is tried against a fixed, ordered list
of layouts; the first layout giving a statement date and an amount wins.
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from budgetsync.domain.entities import Category, Transaction, TransactionType
from budgetsync.domain.errors import ImportFormatError
from budgetsync.utils.amount_parser import parse_amount, split_signed_amount
from budgetsync.utils.date_parser import parse_statement_date
from budgetsync.utils.ids import new_local_id

logger = logging.getLogger(__name__)

MIN_COLUMNS = 3


@dataclass(frozen=True)
class ColumnLayout:
    """Column positions of one layout hypothesis.

    ``type_or_category`` holds a token that is a transaction type when it
    reads "income" or "expense", and a category otherwise.
    """

    name: str
    description: int
    amount: int
    type_or_category: Optional[int] = None
    category: Optional[int] = None


LAYOUTS = (
    ColumnLayout("date,description,amount,type,category", description=1, amount=2, type_or_category=3, category=4),
    ColumnLayout("date,amount,description,category-or-type", description=2, amount=1, type_or_category=3),
    ColumnLayout("date,description,amount,category-or-type", description=1, amount=2, type_or_category=3),
    ColumnLayout("date,amount,description", description=2, amount=1),
)


@dataclass
class ParseResult:
    """Records parsed from a statement and the rows that were rejected."""

    records: list[Transaction] = field(default_factory=list)
    errors: list[ImportFormatError] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        """True if the statement held no usable record."""
        return not self.records


def _cell(cols: list[str], index: Optional[int]) -> str:
    if index is None or index >= len(cols):
        return ""
    return cols[index]


def _type_token(token: str) -> Optional[TransactionType]:
    try:
        return TransactionType(token.strip().lower())
    except ValueError:
        return None


class CSVStatementParser:
    """Parses statement rows into transactions of the active dataset.

    No header is required. A first row that fits no layout is taken to be a
    header and ignored; any other such row is reported as an error.
    """

    def __init__(self, categories: list[Category]):
        """Initialize the parser.

        Args:
            categories: Categories of the active dataset, used to resolve
                category tokens by ID or name
        """
        self.categories = categories
        self._by_key: dict[str, Category] = {}
        for category in categories:
            self._by_key.setdefault(category.name.strip().lower(), category)
        for category in categories:
            self._by_key[category.id.strip().lower()] = category

    def parse_file(self, csv_file_path: str) -> ParseResult:
        """Parse a statement file.

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        csv_path = Path(csv_file_path)
        if not csv_path.exists():
            raise FileNotFoundError(f"CSV file not found: {csv_file_path}")
        return self.parse_text(csv_path.read_text(encoding="utf-8-sig"))

    def parse_text(self, text: str) -> ParseResult:
        """Parse statement text. Bad rows are collected, never raised."""
        result = ParseResult()
        reader = csv.reader(io.StringIO(text), skipinitialspace=True)
        first = True
        for row_num, row in enumerate(reader, start=1):
            cols = [c.strip() for c in row]
            if not any(cols):
                continue
            try:
                result.records.append(self.parse_row(cols, row_num))
            except ImportFormatError as e:
                if first:
                    logger.debug("Ignoring header row: %s", ",".join(cols))
                else:
                    result.errors.append(e)
            first = False
        logger.info("Parsed %d record(s), rejected %d row(s)", len(result.records), len(result.errors))
        return result

    def parse_row(self, cols: list[str], row_num: int = 0) -> Transaction:
        """Parse one row by trying each layout in order.

        Raises:
            ImportFormatError: If no layout fits or the fitting layout lacks
                a description
        """
        if len(cols) < MIN_COLUMNS:
            raise ImportFormatError(f"Row {row_num}: Expected at least {MIN_COLUMNS} columns", row_num)
        try:
            txn_date = parse_statement_date(cols[0])
        except ValueError as e:
            raise ImportFormatError(f"Row {row_num}: {e}", row_num) from e

        for layout in LAYOUTS:
            try:
                signed = parse_amount(_cell(cols, layout.amount))
            except ValueError:
                continue
            description = _cell(cols, layout.description)
            if not description:
                raise ImportFormatError(f"Row {row_num}: Missing description", row_num)
            return self._build(layout, cols, txn_date, signed, description)

        raise ImportFormatError(f"Row {row_num}: No column layout matches", row_num)

    def _build(self, layout: ColumnLayout, cols: list[str], txn_date, signed, description: str) -> Transaction:
        magnitude, sign_type = split_signed_amount(signed)
        token = _cell(cols, layout.type_or_category)
        category_token = _cell(cols, layout.category)

        explicit_type = _type_token(token)
        if explicit_type is None and token and not category_token:
            category_token = token
        if _type_token(category_token) is not None:
            category_token = ""

        category = self._by_key.get(category_token.lower()) if category_token else None
        if explicit_type is not None:
            txn_type = explicit_type
        elif category is not None and category.applies_to is not None:
            txn_type = category.applies_to
        else:
            txn_type = sign_type

        return Transaction(
            id=new_local_id("csv"),
            date=txn_date,
            type=txn_type,
            amount=magnitude,
            description=description,
            category_id=category.id if category else None,
        )
