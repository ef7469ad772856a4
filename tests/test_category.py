"""Tests for categories: the service and the CLI commands."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from budgetsync.cli.main import cli
from budgetsync.domain.entities import TransactionType
from budgetsync.domain.errors import ConflictError, NotFoundError, ValidationError


class TestCategoryService:
    """Tests for CategoryService."""

    def test_defaults_are_present(self, category_service):
        names = [c.name for c in category_service.list_categories()]

        assert names == ["Rent", "Groceries", "Transport", "Fun", "Bills", "Other"]

    def test_create_category(self, category_service):
        outcome = asyncio.run(
            category_service.create_category(
                "Salary", monthly_budget=Decimal("0"), applies_to=TransactionType.INCOME
            )
        )

        assert outcome.ok
        created = category_service.get_category(outcome.record.id)
        assert created.name == "Salary"
        assert created.applies_to is TransactionType.INCOME
        assert created.color == "#94a3b8"

    def test_names_are_unique_ignoring_case(self, category_service):
        with pytest.raises(ConflictError, match="already exists"):
            asyncio.run(category_service.create_category("groceries"))

    @pytest.mark.parametrize("name,budget", [("  ", None), ("Savings", Decimal("-1"))])
    def test_invalid_category(self, category_service, name, budget):
        with pytest.raises(ValidationError):
            asyncio.run(category_service.create_category(name, monthly_budget=budget))

    def test_resolve_by_id_or_name(self, category_service):
        assert category_service.resolve("groceries").name == "Groceries"
        assert category_service.resolve("  FUN ").id == "fun"
        assert category_service.resolve("Missing") is None
        assert category_service.resolve("") is None

    def test_delete_moves_transactions_to_other(self, category_service, transaction_service, store):
        """Deleting a category re-points its transactions before removal."""
        txn = asyncio.run(
            transaction_service.add_transaction(
                date=date(2024, 1, 1), amount=Decimal("-9"), description="Bus", category_id="transport"
            )
        ).record

        outcome = asyncio.run(category_service.delete_category("Transport"))

        assert outcome.ok
        assert category_service.get_category("transport") is None
        assert transaction_service.get_transaction(txn.id).category_id == "other"

    def test_delete_unknown_category(self, category_service):
        with pytest.raises(NotFoundError):
            asyncio.run(category_service.delete_category("Nope"))


def test_category_list(cli_runner, temp_db):
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "category", "list"])

    assert result.exit_code == 0
    assert "Groceries" in result.output
    assert "1,200.00" in result.output


def test_category_create(cli_runner, temp_db):
    db = temp_db.database_path
    result = cli_runner.invoke(
        cli, ["--db-path", db, "category", "create", "Salary", "--type", "income", "--budget", "0"]
    )
    listing = cli_runner.invoke(cli, ["--db-path", db, "category", "list"])

    assert result.exit_code == 0
    assert "Created category 'Salary'" in result.output
    assert "income" in listing.output


def test_category_create_duplicate(cli_runner, temp_db):
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "category", "create", "Rent"])

    assert result.exit_code == 1
    assert "Category 'Rent' already exists" in result.output


def test_category_create_invalid_budget(cli_runner, temp_db):
    result = cli_runner.invoke(
        cli, ["--db-path", temp_db.database_path, "category", "create", "Trips", "--budget", "plenty"]
    )

    assert result.exit_code == 1
    assert "Invalid budget" in result.output


def test_category_delete(cli_runner, temp_db):
    db = temp_db.database_path
    result = cli_runner.invoke(cli, ["--db-path", db, "category", "delete", "fun"])
    listing = cli_runner.invoke(cli, ["--db-path", db, "category", "list"])

    assert result.exit_code == 0
    assert "Deleted category 'Fun'" in result.output
    assert "Fun" not in listing.output


def test_category_delete_not_found(cli_runner, temp_db):
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "category", "delete", "Nope"])

    assert result.exit_code == 1
    assert "not found" in result.output
