"""Local store layer for budgetsync application."""

from budgetsync.store.events import EventChannel, StoreChange, StoreEvent, Subscription
from budgetsync.store.local_store import LocalStore

__all__ = ["EventChannel", "LocalStore", "StoreChange", "StoreEvent", "Subscription"]
