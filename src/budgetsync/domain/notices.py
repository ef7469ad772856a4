"""User-visible notices raised by the sync services.

Services never print. They post a notice naming the action that failed and
let whatever front end is attached render and dismiss it.
"""

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class NoticeKind(str, Enum):
    """Kind of notice, used by front ends to pick a style."""

    ERROR = "error"
    NOT_ALLOWED = "not_allowed"
    ACCESS_REMOVED = "access_removed"
    INFO = "info"


@dataclass(frozen=True)
class Notice:
    """A dismissible message."""

    id: int
    kind: NoticeKind
    title: str
    message: str
    action: Optional[str] = None
    key: Optional[str] = None


class NoticeBoard:
    """Collects active notices and fans them out to listeners."""

    def __init__(self):
        self._notices: list[Notice] = []
        self._listeners: list[Callable[[Notice], None]] = []
        self._posted_keys: set[str] = set()
        self._ids = itertools.count(1)

    @property
    def active(self) -> list[Notice]:
        """Notices that have not been dismissed, oldest first."""
        return list(self._notices)

    def post(
        self,
        kind: NoticeKind,
        title: str,
        message: str,
        action: Optional[str] = None,
        key: Optional[str] = None,
    ) -> Notice:
        """Add a notice and deliver it to listeners."""
        notice = Notice(id=next(self._ids), kind=kind, title=title, message=message, action=action, key=key)
        self._notices.append(notice)
        logger.info("Notice (%s): %s - %s", kind.value, title, message)
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                logger.exception("Notice listener failed")
        return notice

    def post_once(self, key: str, kind: NoticeKind, title: str, message: str) -> Optional[Notice]:
        """Post a notice only the first time ``key`` is seen.

        Returns None when the notice was already posted.
        """
        if key in self._posted_keys:
            return None
        self._posted_keys.add(key)
        return self.post(kind, title, message, key=key)

    def dismiss(self, notice_id: int) -> bool:
        """Remove a notice. Returns False if it was not active."""
        for index, notice in enumerate(self._notices):
            if notice.id == notice_id:
                del self._notices[index]
                return True
        return False

    def clear(self) -> None:
        """Dismiss every notice."""
        self._notices.clear()

    def subscribe(self, listener: Callable[[Notice], None]) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
