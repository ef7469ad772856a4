"""Date-range options shared by listing commands."""

from datetime import date
from typing import Optional

import click

from budgetsync.utils.date_parser import PERIODS, get_date_range, parse_date


def period_options(command):
    """Add --this-month, --last-week, ... flags to a command."""
    for period in reversed(PERIODS):
        command = click.option(
            f"--{period}",
            period.replace("-", "_"),
            is_flag=True,
            help=f"Filter to {period.replace('-', ' ')}",
        )(command)
    return command


def _parse_bound(ctx, label: str, value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return parse_date(value)
    except ValueError as e:
        click.echo(f"Error: Invalid {label} date: {e}", err=True)
        ctx.exit(1)


def resolve_cli_date_range(
    ctx,
    *,
    start_date: Optional[str],
    end_date: Optional[str],
    period_flags: dict[str, bool],
) -> tuple[Optional[date], Optional[date]]:
    """Turn period flags or explicit dates into a (start, end) range.

    At most one period flag may be given, and never together with explicit
    dates. Exits with status 1 on conflicting or unparsable input.
    """
    chosen = [period for period, is_set in period_flags.items() if is_set]
    if len(chosen) > 1:
        click.echo("Error: Only one period option can be specified at a time.", err=True)
        ctx.exit(1)
    if chosen and (start_date or end_date):
        click.echo("Error: Period options cannot be combined with --start-date or --end-date.", err=True)
        ctx.exit(1)

    if chosen:
        return get_date_range(chosen[0])
    return _parse_bound(ctx, "start", start_date), _parse_bound(ctx, "end", end_date)
