"""Add transaction command."""

import asyncio

import click
from budgetsync.cli.error_handling import handle_domain_error, require_ok
from budgetsync.domain.category import CategoryService
from budgetsync.domain.entities import TransactionType
from budgetsync.domain.errors import DomainError, NotFoundError, category_not_found
from budgetsync.domain.transaction import TransactionService
from budgetsync.utils.amount_parser import parse_amount
from budgetsync.utils.date_parser import parse_date


def resolve_category_id(ctx, category: str | None) -> str | None:
    """Turn a category name or ID given on the command line into an ID."""
    if category is None:
        return None
    found = CategoryService(ctx.obj["store"], ctx.obj["controller"]).resolve(category)
    if found is None:
        handle_domain_error(ctx, NotFoundError(category_not_found(category)))
    return found.id


@click.command("add")
@click.option(
    "--date",
    "date_str",
    required=True,
    help="Transaction date (YYYY-MM-DD or relative like 'today', 'yesterday')",
)
@click.option(
    "--amount", required=True, help="Transaction amount (e.g., 123.45 or -123.45)"
)
@click.option("--description", required=True, help="Transaction description")
@click.option(
    "--type",
    "txn_type",
    type=click.Choice(["income", "expense"], case_sensitive=False),
    help="Transaction type (default: from the amount's sign, negative is expense)",
)
@click.option("--category", help="Category name or ID (default: Other)")
@click.option("--merchant", help="Merchant")
@click.option("--notes", help="Notes")
@click.pass_context
def add_transaction(
    ctx,
    date_str: str,
    amount: str,
    description: str,
    txn_type: str | None,
    category: str | None,
    merchant: str | None,
    notes: str | None,
):
    """Add a transaction manually.

    Examples:
        budgetsync add --date 2024-01-15 --amount -50.00 --description "Grocery store"
        budgetsync add --date today --amount 1000 --type income --description "Salary"
    """
    service = TransactionService(ctx.obj["store"], ctx.obj["controller"])

    try:
        txn_date = parse_date(date_str)
    except ValueError as e:
        click.echo(f"Error: Invalid date format: {e}", err=True)
        ctx.exit(1)

    try:
        txn_amount = parse_amount(amount)
    except ValueError as e:
        click.echo(f"Error: Invalid amount format: {e}", err=True)
        ctx.exit(1)

    category_id = resolve_category_id(ctx, category)

    try:
        outcome = asyncio.run(
            service.add_transaction(
                date=txn_date,
                amount=txn_amount,
                description=description,
                type=TransactionType(txn_type.lower()) if txn_type else None,
                category_id=category_id,
                merchant=merchant,
                notes=notes,
            )
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    require_ok(ctx, outcome)

    txn = outcome.record
    click.echo(
        f"Added {txn.type.value} of {txn.amount:,.2f} on {txn.date}: {txn.description} (ID: {txn.id})"
    )


def register_commands(cli):
    """Register add command with main CLI."""
    cli.add_command(add_transaction)
