"""Domain layer for budgetsync.

Only entities and errors are re-exported here so that the store, adapter
and database layers can import them without pulling in the services.
"""

from budgetsync.domain.entities import (
    Category,
    Collection,
    DatasetData,
    DatasetInfo,
    Membership,
    Role,
    StorageMode,
    Transaction,
    TransactionType,
)
from budgetsync.domain.errors import DomainError

__all__ = [
    "Category",
    "Collection",
    "DatasetData",
    "DatasetInfo",
    "DomainError",
    "Membership",
    "Role",
    "StorageMode",
    "Transaction",
    "TransactionType",
]
