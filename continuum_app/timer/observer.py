"""
Timer observer for the active period.

A read-side projection: elapsed = now - start_time of the tracked period,
pushed to subscribers on a fixed cadence and whenever the host comes back
to the foreground. It never writes to the store.
"""

import asyncio
import itertools
from typing import Any, Callable, Optional

import structlog

from ..models.period import Period
from ..utils.time import SystemClock, elapsed_ms, format_elapsed

logger = structlog.get_logger(__name__)

TimerCallback = Callable[[int], None]


class TimerSubscription:
    """Handle for one timer subscriber."""

    def __init__(self, observer: "TimerObserver", subscription_id: int):
        self._observer = observer
        self._id = subscription_id

    @property
    def active(self) -> bool:
        return self._observer._has_subscriber(self._id)

    def unsubscribe(self) -> None:
        """Stop this subscriber only; calling it again does nothing."""
        self._observer._remove_subscriber(self._id)


class TimerObserver:
    """Publishes elapsed milliseconds of the active period to subscribers."""

    def __init__(self, clock: Optional[Any] = None, tick_interval_seconds: float = 1.0):
        if tick_interval_seconds <= 0:
            raise ValueError(f"tick_interval_seconds must be positive, got {tick_interval_seconds}")

        self.logger = logger
        self.clock = clock or SystemClock()
        self.tick_interval_seconds = tick_interval_seconds

        self._period_id: Optional[str] = None
        self._start_time: Optional[int] = None
        self._subscribers: dict[int, TimerCallback] = {}
        self._subscription_ids = itertools.count(1)
        self._task: Optional[asyncio.Task] = None

    @property
    def period_id(self) -> Optional[str]:
        return self._period_id

    @property
    def is_tracking(self) -> bool:
        return self._start_time is not None

    @property
    def is_running(self) -> bool:
        """True while the periodic tick task is alive."""
        return self._task is not None and not self._task.done()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def start(self, period: Period) -> None:
        """
        Track a period and start ticking if anyone is listening.

        Must be called from a running event loop when subscribers exist.
        """
        self._cancel_tick()
        self._period_id = period.id
        self._start_time = period.start_time

        self.logger.debug(
            "Timer tracking period",
            period_id=period.id,
            start_time=period.start_time,
            elapsed=format_elapsed(self.elapsed_ms())
        )

        if self._subscribers:
            self._ensure_ticking()
        self._notify()

    def stop(self) -> None:
        """Stop ticking and forget the tracked period."""
        self._cancel_tick()
        if self._period_id is not None:
            self.logger.debug("Timer stopped", period_id=self._period_id)
        self._period_id = None
        self._start_time = None

    def elapsed_ms(self) -> int:
        """Elapsed time of the tracked period, 0 when nothing is tracked."""
        if self._start_time is None:
            return 0
        return elapsed_ms(self._start_time, self.clock.now_ms())

    def subscribe(self, callback: TimerCallback) -> TimerSubscription:
        """
        Register a callback receiving elapsed milliseconds on every tick.

        Subscribing the same callable twice registers two listeners.

        Returns:
            Subscription handle whose unsubscribe() removes exactly this listener
        """
        subscription_id = next(self._subscription_ids)
        self._subscribers[subscription_id] = callback

        if self.is_tracking and not self.is_running:
            self._ensure_ticking()

        return TimerSubscription(self, subscription_id)

    def notify_foregrounded(self) -> None:
        """Recompute immediately after the host was suspended or backgrounded."""
        if self.is_tracking:
            self._notify()

    def handle_active_changed(self, period: Period) -> None:
        """
        React to the engine opening a new active period.

        If it differs from the tracked one the timer stops; the caller is
        expected to restart it against the new period.
        """
        if self._period_id is not None and period.id != self._period_id:
            self.logger.debug(
                "Active period changed, stopping timer",
                tracked_period_id=self._period_id,
                new_period_id=period.id
            )
            self.stop()

    def _has_subscriber(self, subscription_id: int) -> bool:
        return subscription_id in self._subscribers

    def _remove_subscriber(self, subscription_id: int) -> None:
        if self._subscribers.pop(subscription_id, None) is None:
            return
        if not self._subscribers:
            self._cancel_tick()

    def _ensure_ticking(self) -> None:
        if self.is_running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._tick_loop())

    def _cancel_tick(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval_seconds)
            self._notify()

    def _notify(self) -> None:
        if not self._subscribers:
            return

        elapsed = self.elapsed_ms()
        for callback in list(self._subscribers.values()):
            try:
                callback(elapsed)
            except Exception as e:
                self.logger.error(
                    "Timer subscriber failed",
                    period_id=self._period_id,
                    error=str(e)
                )
