"""Persistence adapters for budgetsync."""

from budgetsync.adapters.base import AdapterResult, Outcome, PersistenceAdapter
from budgetsync.adapters.client import RemoteClient, RemoteError, RemoteResponse
from budgetsync.adapters.local import LocalPersistenceAdapter
from budgetsync.adapters.remote import RemotePersistenceAdapter

__all__ = [
    "AdapterResult",
    "LocalPersistenceAdapter",
    "Outcome",
    "PersistenceAdapter",
    "RemoteClient",
    "RemoteError",
    "RemotePersistenceAdapter",
    "RemoteResponse",
]
