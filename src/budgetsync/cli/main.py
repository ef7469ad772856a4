"""Main CLI entry point."""

import logging

import click
from budgetsync.adapters.local import LocalPersistenceAdapter
from budgetsync.database.factories import create_sqlite_storage
from budgetsync.domain.mutations import OptimisticMutationController
from budgetsync.store.local_store import LocalStore

# Import and register all commands at module level
from budgetsync.cli.commands import (
    add,
    category,
    dataset,
    import_cmd,
    transaction,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides BUDGETSYNC_DB_PATH environment variable)",
    envvar="BUDGETSYNC_DB_PATH",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity",
    envvar="BUDGETSYNC_LOG_LEVEL",
)
@click.pass_context
def cli(ctx, db_path: str | None, log_level: str):
    """Budgetsync - Budget datasets with safe imports.

    Keep transactions and categories in named datasets, and import bank
    statement CSV files without creating duplicates.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Open storage only when actually running a command (not when showing help)
    if ctx.invoked_subcommand is not None:
        storage = create_sqlite_storage(database_path=db_path)
        storage.connect()
        storage.initialize_schema()
        store = LocalStore(storage)
        store.load()
        ctx.obj["storage"] = storage
        ctx.obj["store"] = store
        ctx.obj["controller"] = OptimisticMutationController(store, LocalPersistenceAdapter(store))
        ctx.call_on_close(storage.disconnect)


# Register all commands
dataset.register_commands(cli)
add.register_commands(cli)
transaction.register_commands(cli)
category.register_commands(cli)
import_cmd.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
