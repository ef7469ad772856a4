"""CLI error handling helpers."""

import click

from budgetsync.domain.errors import DomainError
from budgetsync.domain.mutations import MutationOutcome


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure."""
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)


def require_ok(ctx: click.Context, outcome: MutationOutcome) -> None:
    """Exit with failure when a write did not go through."""
    if not outcome.ok:
        handle_domain_error(ctx, outcome.error or DomainError("Write failed"))
