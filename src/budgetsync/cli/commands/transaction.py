"""Transaction management commands."""

import asyncio

import click
from budgetsync.cli.commands.add import resolve_category_id
from budgetsync.cli.date_filters import period_options, resolve_cli_date_range
from budgetsync.cli.error_handling import handle_domain_error, require_ok
from budgetsync.domain.category import CategoryService
from budgetsync.domain.entities import TransactionType
from budgetsync.domain.errors import DomainError
from budgetsync.domain.transaction import TransactionService
from budgetsync.utils.amount_parser import parse_amount
from budgetsync.utils.date_parser import parse_date


@click.group()
def transaction_group():
    """Manage transactions."""
    pass


@transaction_group.command("list")
@click.option("--start-date", help="Start date (YYYY-MM-DD or relative like 'last month', 'this year')")
@click.option("--end-date", help="End date (YYYY-MM-DD or relative like 'today', 'this month')")
@period_options
@click.option("--category", help="Category name or ID")
@click.pass_context
def list_transactions(
    ctx,
    start_date: str | None,
    end_date: str | None,
    category: str | None,
    **periods: bool,
):
    """View transactions of the active dataset with optional filters."""
    store = ctx.obj["store"]
    service = TransactionService(store, ctx.obj["controller"])
    category_service = CategoryService(store, ctx.obj["controller"])

    start, end = resolve_cli_date_range(
        ctx,
        start_date=start_date,
        end_date=end_date,
        period_flags={name.replace("_", "-"): value for name, value in periods.items()},
    )
    category_id = resolve_category_id(ctx, category)

    transactions = service.list_transactions(start_date=start, end_date=end, category_id=category_id)
    if not transactions:
        click.echo("No transactions found.")
        return

    names = {c.id: c.name for c in category_service.list_categories()}
    click.echo(f"{'ID':<22} {'Date':<12} {'Type':<8} {'Amount':>14} {'Category':<16} {'Description':<28}")
    click.echo("-" * 100)
    for txn in transactions:
        category_name = names.get(txn.category_id, "")
        click.echo(
            f"{txn.id:<22} {txn.date.isoformat():<12} {txn.type.value:<8} "
            f"{txn.amount:>14,.2f} {category_name[:16]:<16} {txn.description[:28]:<28}"
        )

    income = sum((t.amount for t in transactions if t.type is TransactionType.INCOME), start=0)
    expense = sum((t.amount for t in transactions if t.type is TransactionType.EXPENSE), start=0)
    click.echo("-" * 100)
    click.echo(f"{len(transactions)} transaction(s), income {income:,.2f}, expenses {expense:,.2f}")


@transaction_group.command("update")
@click.argument("transaction_id")
@click.option("--date", "date_str", help="Transaction date (YYYY-MM-DD or relative like 'today', 'yesterday')")
@click.option("--amount", help="Transaction amount, a positive magnitude")
@click.option("--description", help="Transaction description")
@click.option(
    "--type",
    "txn_type",
    type=click.Choice(["income", "expense"], case_sensitive=False),
    help="Transaction type",
)
@click.option("--category", help="Category name or ID")
@click.option("--merchant", help="Merchant")
@click.option("--notes", help="Notes")
@click.pass_context
def update_transaction(
    ctx,
    transaction_id: str,
    date_str: str | None,
    amount: str | None,
    description: str | None,
    txn_type: str | None,
    category: str | None,
    merchant: str | None,
    notes: str | None,
) -> None:
    """Update a transaction.

    Updates only the fields that are provided.

    Examples:
        budgetsync transaction update tx_1f3a --amount 75.00
        budgetsync transaction update tx_1f3a --category Groceries
    """
    service = TransactionService(ctx.obj["store"], ctx.obj["controller"])
    changes = {}

    if date_str is not None:
        try:
            changes["date"] = parse_date(date_str)
        except ValueError as e:
            click.echo(f"Error: Invalid date format: {e}", err=True)
            ctx.exit(1)

    if amount is not None:
        try:
            changes["amount"] = abs(parse_amount(amount))
        except ValueError as e:
            click.echo(f"Error: Invalid amount format: {e}", err=True)
            ctx.exit(1)

    if description is not None:
        changes["description"] = description
    if txn_type is not None:
        changes["type"] = TransactionType(txn_type.lower())
    if category is not None:
        changes["category_id"] = resolve_category_id(ctx, category)
    if merchant is not None:
        changes["merchant"] = merchant
    if notes is not None:
        changes["notes"] = notes

    try:
        outcome = asyncio.run(service.edit_transaction(transaction_id, **changes))
    except DomainError as e:
        handle_domain_error(ctx, e)
    require_ok(ctx, outcome)
    click.echo(f"Updated transaction {transaction_id}")


@transaction_group.command("delete")
@click.argument("transaction_id")
@click.pass_context
def delete_transaction(ctx, transaction_id: str) -> None:
    """Delete a transaction."""
    service = TransactionService(ctx.obj["store"], ctx.obj["controller"])

    try:
        outcome = asyncio.run(service.delete_transaction(transaction_id))
    except DomainError as e:
        handle_domain_error(ctx, e)
    require_ok(ctx, outcome)
    click.echo(f"Deleted transaction {transaction_id}")


def register_commands(cli):
    """Register transaction commands with main CLI."""
    cli.add_command(transaction_group, name="transaction")
