"""Storage layer for budgetsync application."""

from budgetsync.database.base import DocumentStorage
from budgetsync.database.factories import create_memory_storage, create_sqlite_storage

__all__ = ["DocumentStorage", "create_memory_storage", "create_sqlite_storage"]
