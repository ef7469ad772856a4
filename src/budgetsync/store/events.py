"""Typed publish/subscribe channel used by the local store."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class StoreEvent(str, Enum):
    """Events emitted by the local store.

    SWITCHED fires when the active dataset changes, CHANGED on every data
    mutation (including the one implied by a switch).
    """

    CHANGED = "changed"
    SWITCHED = "switched"


@dataclass(frozen=True)
class StoreChange:
    """Payload delivered to subscribers."""

    kind: StoreEvent
    dataset_id: str
    collections: tuple[str, ...] = ()


Listener = Callable[[StoreChange], Any]


class Subscription:
    """Handle returned by EventChannel.subscribe."""

    def __init__(self, channel: "EventChannel", kind: StoreEvent, listener: Listener):
        self._channel = channel
        self.kind = kind
        self.listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        """Stop receiving events. Calling twice is harmless."""
        if self.active:
            self._channel._remove(self)
            self.active = False


class EventChannel:
    """Synchronous fan-out of store events to subscribers."""

    def __init__(self):
        self._subscriptions: dict[StoreEvent, list[Subscription]] = {
            kind: [] for kind in StoreEvent
        }

    def subscribe(self, kind: StoreEvent, listener: Listener) -> Subscription:
        """Register a listener for one event kind."""
        subscription = Subscription(self, kind, listener)
        self._subscriptions[kind].append(subscription)
        return subscription

    def emit(self, kind: StoreEvent, dataset_id: str, collections: Optional[tuple[str, ...]] = None) -> None:
        """Deliver an event to every current subscriber of its kind.

        A failing listener is logged and does not stop delivery to the rest.
        """
        change = StoreChange(kind=kind, dataset_id=dataset_id, collections=collections or ())
        for subscription in list(self._subscriptions[kind]):
            try:
                subscription.listener(change)
            except Exception:
                logger.exception("Store listener failed for %s event", kind.value)

    def subscriber_count(self, kind: StoreEvent) -> int:
        """Return how many listeners are subscribed to an event kind."""
        return len(self._subscriptions[kind])

    def clear(self) -> None:
        """Drop every subscription."""
        for subscriptions in self._subscriptions.values():
            for subscription in subscriptions:
                subscription.active = False
            subscriptions.clear()

    def _remove(self, subscription: Subscription) -> None:
        subscriptions = self._subscriptions[subscription.kind]
        if subscription in subscriptions:
            subscriptions.remove(subscription)
