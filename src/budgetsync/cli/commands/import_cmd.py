"""CSV import and undo commands."""

import asyncio

import click
from budgetsync.cli.error_handling import handle_domain_error, require_ok
from budgetsync.domain.csv_import import CSVImportService
from budgetsync.domain.errors import DomainError
from budgetsync.domain.importing import ImportStatus


@click.command("import")
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_csv(ctx, csv_file: str):
    """Import transactions from a bank statement CSV file.

    Rows already present (same date, type, amount and description) are
    skipped. The column layout is detected per row.
    """
    service = CSVImportService(ctx.obj["controller"])

    try:
        result = asyncio.run(service.import_file(csv_file))
    except (DomainError, FileNotFoundError) as e:
        handle_domain_error(ctx, e)

    click.echo("\nImport complete:" if result.status is not ImportStatus.FAILED else "\nImport failed:")
    click.echo(f"  Imported: {result.accepted} transactions")
    click.echo(f"  Updated: {result.updated} transactions")
    click.echo(f"  Skipped: {result.duplicates} duplicates")
    click.echo(f"  Invalid: {result.invalid} rows")
    for record in result.invalid_records:
        click.echo(f"    {record.label}: {record.reason}", err=True)
    if result.status is ImportStatus.NO_VALID_RECORDS:
        click.echo("No valid records found in file.")
    if result.status is ImportStatus.FAILED:
        handle_domain_error(ctx, result.error or DomainError("Import failed"))


@click.command("undo-import")
@click.pass_context
def undo_import(ctx):
    """Remove the transactions added by the most recent import."""
    controller = ctx.obj["controller"]

    try:
        outcome = asyncio.run(controller.undo_last_import())
    except DomainError as e:
        handle_domain_error(ctx, e)
    require_ok(ctx, outcome)
    click.echo(f"Removed {len(outcome.record)} imported transaction(s)")


def register_commands(cli):
    """Register import commands with main CLI."""
    cli.add_command(import_csv)
    cli.add_command(undo_import)
