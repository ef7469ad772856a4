"""Category management commands."""

import asyncio

import click
from budgetsync.cli.error_handling import handle_domain_error, require_ok
from budgetsync.domain.category import CategoryService
from budgetsync.domain.entities import TransactionType
from budgetsync.domain.errors import DomainError
from budgetsync.utils.amount_parser import parse_amount


@click.group()
def category_group():
    """Manage categories."""
    pass


@category_group.command("list")
@click.pass_context
def list_categories(ctx):
    """List the categories of the active dataset."""
    service = CategoryService(ctx.obj["store"], ctx.obj["controller"])

    categories = service.list_categories()
    if not categories:
        click.echo("No categories found.")
        return

    click.echo(f"{'ID':<22} {'Name':<24} {'Applies to':<10} {'Budget':>12}")
    click.echo("-" * 72)
    for category in categories:
        applies_to = category.applies_to.value if category.applies_to else ""
        budget = f"{category.monthly_budget:,.2f}" if category.monthly_budget is not None else ""
        click.echo(f"{category.id:<22} {category.name:<24} {applies_to:<10} {budget:>12}")


@category_group.command("create")
@click.argument("name")
@click.option("--color", help="Display color, e.g. '#4ade80'")
@click.option("--budget", help="Monthly budget")
@click.option(
    "--type",
    "applies_to",
    type=click.Choice(["expense", "income"], case_sensitive=False),
    help="Transaction type the category is meant for",
)
@click.pass_context
def create_category(ctx, name: str, color: str | None, budget: str | None, applies_to: str | None):
    """Create a new category."""
    service = CategoryService(ctx.obj["store"], ctx.obj["controller"])

    monthly_budget = None
    if budget is not None:
        try:
            monthly_budget = parse_amount(budget)
        except ValueError as e:
            click.echo(f"Error: Invalid budget: {e}", err=True)
            ctx.exit(1)

    try:
        outcome = asyncio.run(
            service.create_category(
                name=name,
                color=color,
                monthly_budget=monthly_budget,
                applies_to=TransactionType(applies_to.lower()) if applies_to else None,
            )
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    require_ok(ctx, outcome)
    click.echo(f"Created category '{outcome.record.name}' (ID: {outcome.record.id})")


@category_group.command("delete")
@click.argument("category")
@click.pass_context
def delete_category(ctx, category: str):
    """Delete a category by name or ID.

    Transactions in the category are moved to 'Other' (or the first
    remaining category).
    """
    service = CategoryService(ctx.obj["store"], ctx.obj["controller"])

    try:
        outcome = asyncio.run(service.delete_category(category))
    except DomainError as e:
        handle_domain_error(ctx, e)
    require_ok(ctx, outcome)
    click.echo(f"Deleted category '{outcome.record.name}'")


def register_commands(cli):
    """Register category commands with main CLI."""
    cli.add_command(category_group, name="category")
