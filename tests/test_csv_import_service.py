"""Domain tests for CSV import service."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from budgetsync.domain.csv_import import CSVImportService
from budgetsync.domain.entities import TransactionType
from budgetsync.domain.importing import ImportStatus


@pytest.fixture
def import_service(controller):
    return CSVImportService(controller)


def test_same_transaction_in_two_formats_imports_once(import_service, store):
    """Two spellings of one transaction yield one expense of 42.10."""
    text = (
        '2024-01-05,-42.10,"Coffee Shop","other"\n'
        '01/05/2024,42.10,"Coffee Shop",other\n'
    )

    result = asyncio.run(import_service.import_text(text))

    transactions = store.get_active().transactions
    assert result.accepted == 1
    assert result.duplicates == 1
    assert len(transactions) == 1
    txn = transactions[0]
    assert txn.type is TransactionType.EXPENSE
    assert txn.amount == Decimal("42.10")
    assert txn.date == date(2024, 1, 5)
    assert txn.category_id == "other"


def test_import_file_result_counts(import_service, store, fixtures_dir):
    """Every import reports accepted, duplicate and invalid counts."""
    result = asyncio.run(import_service.import_file(str(fixtures_dir / "statement.csv")))

    assert result.status is ImportStatus.COMPLETED
    assert result.accepted == 4
    assert result.updated == 0
    assert result.duplicates == 1
    assert result.invalid == 1
    assert result.invalid_records[0].label == "row 7"
    assert result.summary() == "4 imported, 0 updated, 1 duplicate(s) skipped, 1 invalid skipped"

    data = store.get_active()
    assert len(data.transactions) == 4
    assert sorted(data.last_import_batch_ids) == sorted(t.id for t in data.transactions)
    assert {t.import_batch_id for t in data.transactions} == {result.batch_id}


def test_reimport_is_idempotent(import_service, store, fixtures_dir):
    """Importing the same file twice adds nothing the second time."""
    path = str(fixtures_dir / "statement.csv")
    asyncio.run(import_service.import_file(path))

    result = asyncio.run(import_service.import_file(path))

    assert result.status is ImportStatus.NOTHING_NEW
    assert result.accepted == 0
    assert result.duplicates == 5
    assert len(store.get_active().transactions) == 4


def test_import_keeps_imported_categories(import_service, store):
    """Category tokens resolve against the active dataset's categories."""
    asyncio.run(import_service.import_text("2024-01-06,-85.20,Supermarket,Groceries\n"))

    assert store.get_active().transactions[0].category_id == "groceries"


def test_file_without_valid_rows(import_service, store, tmp_path):
    """A file with nothing usable reports zero counts and writes nothing."""
    csv_path = tmp_path / "bad.csv"
    csv_path.write_text("Header,Only\nfoo,bar,baz\n", encoding="utf-8")

    result = asyncio.run(import_service.import_file(str(csv_path)))

    assert result.status is ImportStatus.NO_VALID_RECORDS
    assert result.accepted == 0
    assert result.invalid == 1
    assert store.get_active().transactions == []
    assert result.summary().startswith("No valid records found")


def test_missing_file_raises(import_service, tmp_path):
    """A missing file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        asyncio.run(import_service.import_file(str(tmp_path / "missing.csv")))


def test_undo_last_import(import_service, controller, store, fixtures_dir):
    """Undo removes exactly the transactions of the last import."""
    asyncio.run(import_service.import_text("2023-12-31,-5.00,Earlier,Fun\n"))
    asyncio.run(import_service.import_file(str(fixtures_dir / "statement.csv")))

    outcome = asyncio.run(controller.undo_last_import())

    data = store.get_active()
    assert outcome.ok
    assert len(outcome.record) == 4
    assert [t.description for t in data.transactions] == ["Earlier"]
    assert data.last_import_batch_ids == []
