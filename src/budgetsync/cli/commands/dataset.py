"""Dataset management commands."""

import click
from budgetsync.cli.error_handling import handle_domain_error
from budgetsync.domain.errors import DomainError, NotFoundError, dataset_not_found


def _resolve_dataset(store, token: str):
    """Find a dataset by ID, then by name ignoring case."""
    info = store.get_dataset_info(token)
    if info is not None:
        return info
    for dataset in store.datasets:
        if dataset.name.lower() == token.strip().lower():
            return dataset
    raise NotFoundError(dataset_not_found(token))


@click.group()
def dataset_group():
    """Manage datasets (separate budgets)."""
    pass


@dataset_group.command("list")
@click.pass_context
def list_datasets(ctx):
    """List all datasets. The active one is marked with '*'."""
    store = ctx.obj["store"]

    click.echo(f"{'':<2} {'ID':<24} {'Name':<30} {'Kind':<10}")
    click.echo("-" * 70)
    for info in store.datasets:
        marker = "*" if info.id == store.active_id else ""
        click.echo(f"{marker:<2} {info.id:<24} {info.name:<30} {info.kind.value:<10}")


@dataset_group.command("create")
@click.argument("name")
@click.option("--switch", is_flag=True, help="Make the new dataset active")
@click.pass_context
def create_dataset(ctx, name: str, switch: bool):
    """Create a new dataset seeded with the default categories."""
    store = ctx.obj["store"]

    try:
        info = store.create_dataset(name)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created dataset '{info.name}' (ID: {info.id})")
    if switch:
        store.switch_active(info.id)
        click.echo(f"Switched to dataset '{info.name}'")


@dataset_group.command("switch")
@click.argument("dataset")
@click.pass_context
def switch_dataset(ctx, dataset: str):
    """Make a dataset active, by ID or name."""
    store = ctx.obj["store"]

    try:
        info = _resolve_dataset(store, dataset)
    except DomainError as e:
        handle_domain_error(ctx, e)
    store.switch_active(info.id)
    click.echo(f"Switched to dataset '{info.name}'")


@dataset_group.command("rename")
@click.argument("dataset")
@click.argument("name")
@click.pass_context
def rename_dataset(ctx, dataset: str, name: str):
    """Rename a dataset, given by ID or name."""
    store = ctx.obj["store"]

    try:
        info = _resolve_dataset(store, dataset)
        renamed = store.rename_dataset(info.id, name)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Renamed dataset '{info.name}' to '{renamed.name}'")


def register_commands(cli):
    """Register dataset commands with main CLI."""
    cli.add_command(dataset_group, name="dataset")
