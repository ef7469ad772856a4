"""Storage factory functions for creating storage instances."""

import os
from pathlib import Path
from typing import Optional

from budgetsync.database.sqlalchemy_db import SQLAlchemyStorage


def create_sqlite_storage(database_path: Optional[str] = None) -> SQLAlchemyStorage:
    """Create a SQLite storage instance.

    Args:
        database_path: Path to SQLite database file. If None, checks BUDGETSYNC_DB_PATH
            environment variable, then defaults to ~/.budgetsync/budgetsync.db

    Returns:
        SQLAlchemyStorage instance configured for SQLite
    """
    if database_path is None:
        # Check environment variable
        database_path = os.environ.get("BUDGETSYNC_DB_PATH")

    if database_path is None:
        # Default to ~/.budgetsync/budgetsync.db
        home = Path.home()
        db_dir = home / ".budgetsync"
        db_dir.mkdir(exist_ok=True)
        database_path = str(db_dir / "budgetsync.db")

    database_url = f"sqlite:///{database_path}"
    return SQLAlchemyStorage(database_url)


def create_memory_storage() -> SQLAlchemyStorage:
    """Create a throwaway in-memory SQLite storage instance."""
    return SQLAlchemyStorage("sqlite://")
