"""Access watchdog: evict the user from a remote dataset they can no longer see.

Push notifications about membership changes may never reach a user who was
just removed, so access is re-validated on a short interval and, throttled,
on user activity. A push signal only brings the next check forward.

A check that fails is inconclusive and changes nothing; only a successful
listing that no longer contains the active dataset evicts.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Optional

from budgetsync.domain.constants import PERSONAL_DATASET_NAME, SyncSettings
from budgetsync.domain.entities import DatasetInfo, DatasetKind
from budgetsync.domain.notices import NoticeBoard, NoticeKind
from budgetsync.domain.session import RemoteSession

logger = logging.getLogger(__name__)


class WatchState(str, Enum):
    """Watchdog states."""

    IDLE = "idle"
    WATCHING = "watching"
    CHECKING = "checking"
    EVICTING = "evicting"


class CheckOutcome(str, Enum):
    """Result of one access check."""

    OK = "ok"
    EVICTED = "evicted"
    INCONCLUSIVE = "inconclusive"
    SKIPPED = "skipped"


class AccessWatchdog:
    """Re-validates access to the active remote dataset."""

    def __init__(
        self,
        session: RemoteSession,
        notices: Optional[NoticeBoard] = None,
        settings: Optional[SyncSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the watchdog.

        Args:
            session: Remote session whose active dataset is watched
            notices: Board receiving the access-removed notice
            settings: Poll interval and activity cooldown
            clock: Monotonic clock in seconds
        """
        self.session = session
        self.notices = notices or session.notices
        self.settings = settings or session.settings
        self.clock = clock
        self._state = WatchState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._triggered: set[asyncio.Task] = set()
        self._last_check_at: Optional[float] = None
        self._last_activity_at: Optional[float] = None

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def running(self) -> bool:
        """True while the polling task is alive."""
        return self._task is not None and not self._task.done()

    def _set_state(self, state: WatchState) -> None:
        if state is not self._state:
            logger.debug("Access watchdog %s -> %s", self._state.value, state.value)
            self._state = state

    def _settle(self) -> None:
        self._set_state(WatchState.WATCHING if self.running else WatchState.IDLE)

    # Lifecycle
    def start(self) -> None:
        """Start polling. The first check runs immediately.

        Must be called from within a running event loop.
        """
        if self.running:
            return
        self._set_state(WatchState.WATCHING)
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Stop polling and any triggered checks."""
        tasks = [t for t in [self._task, *self._triggered] if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._triggered.clear()
        self._set_state(WatchState.IDLE)

    async def _run(self) -> None:
        reason = "start"
        while True:
            await self.check_now(reason)
            reason = "interval"
            await asyncio.sleep(self.settings.watchdog_interval)

    # Triggers
    def notify_activity(self) -> Optional[asyncio.Task]:
        """Schedule a check because the user did something.

        Activity inside the cooldown window is ignored however much of it
        there is. Returns the scheduled task, or None.
        """
        now = self.clock()
        if self._last_activity_at is not None and now - self._last_activity_at < self.settings.activity_cooldown:
            return None
        self._last_activity_at = now
        return self._trigger("activity")

    def notify_push(self) -> Optional[asyncio.Task]:
        """Schedule a check because a membership change was pushed.

        A push inside the cooldown of the last check is deferred until the
        cooldown ends rather than dropped.
        """
        delay = 0.0
        if self._last_check_at is not None:
            delay = max(0.0, self.settings.activity_cooldown - (self.clock() - self._last_check_at))
        return self._trigger("push", delay=delay)

    def _trigger(self, reason: str, delay: float = 0.0) -> Optional[asyncio.Task]:
        if self.session.current is None:
            return None
        if delay > 0:
            check = self._deferred_check(reason, delay)
        else:
            check = self.check_now(reason)
        task = asyncio.get_running_loop().create_task(check)
        self._triggered.add(task)
        task.add_done_callback(self._triggered.discard)
        return task

    async def _deferred_check(self, reason: str, delay: float) -> CheckOutcome:
        logger.debug("Deferring %s check by %.2fs", reason, delay)
        await asyncio.sleep(delay)
        return await self.check_now(reason, throttle=False)

    # Checking
    async def check_now(self, reason: str = "manual", throttle: bool = True) -> CheckOutcome:
        """Validate access to the active dataset once.

        Skipped when no remote dataset is active or a check is already in
        flight. With ``throttle`` it is also skipped when the last check is
        more recent than the cooldown. Never raises.
        """
        if self.session.current is None:
            return CheckOutcome.SKIPPED
        if self._state in (WatchState.CHECKING, WatchState.EVICTING):
            return CheckOutcome.SKIPPED
        now = self.clock()
        if throttle and self._last_check_at is not None and now - self._last_check_at < self.settings.activity_cooldown:
            return CheckOutcome.SKIPPED
        self._last_check_at = now

        watched = self.session.current
        self._set_state(WatchState.CHECKING)
        try:
            datasets = await self.session.refresh_datasets()
        except Exception as e:
            logger.warning("Access check (%s) inconclusive: %s", reason, e)
            self._settle()
            return CheckOutcome.INCONCLUSIVE

        if any(d.id == watched.id for d in datasets):
            self._settle()
            return CheckOutcome.OK

        self._set_state(WatchState.EVICTING)
        try:
            await self._evict(watched, datasets)
        except Exception as e:
            logger.warning("Eviction from %s incomplete, will retry: %s", watched.id, e)
            self._settle()
            return CheckOutcome.INCONCLUSIVE
        self._set_state(WatchState.IDLE)
        self._settle()
        return CheckOutcome.EVICTED

    async def _evict(self, lost: DatasetInfo, datasets: list[DatasetInfo]) -> None:
        logger.warning("Access to dataset %s (%s) was removed", lost.id, lost.name)
        self.session.clear_saved_pointer(lost.id)
        self.notices.post_once(
            f"access_removed:{lost.id}",
            NoticeKind.ACCESS_REMOVED,
            "Access removed",
            f"You were removed from {lost.name}.",
        )

        fallback = self.session.fallback_dataset(datasets)
        if fallback is None:
            fallback = await self.session.create_dataset(PERSONAL_DATASET_NAME, DatasetKind.PERSONAL)
        if self.session.current is not None and self.session.current.id == lost.id:
            await self.session.switch_dataset(fallback.id)
        self.session.store.set_datasets(self.session.accessible)
        self.session.store.drop_cache(lost.id)
