"""Periodic callbacks that pause while the host is hidden.

Hides timer bookkeeping: at most one armed timer per handle, suspension on
hide, automatic resumption on show, and cleanup on disposal.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any, Protocol

from .visibility import VisibilityMonitor

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    """Anything that can cancel a scheduled call."""

    def cancel(self) -> None: ...


class Clock(Protocol):
    """Schedules one-shot calls; asyncio event loops satisfy this."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...


class BackgroundAwareInterval:
    """Run a callback every `delay` seconds while the host is visible.

    The handle keeps a logical running flag separate from the armed timer.
    Hiding the host cancels the timer but keeps the flag; showing it again
    re-arms the timer (running the callback at once when `immediate` is set)
    without any call to start().

    The callback is read at every tick, so assigning `callback` replaces the
    function for the next invocation. A callback may return an awaitable; it
    is scheduled as a task and not awaited, so a slow coroutine can still be
    running when the next tick starts another one. This overlap is accepted:
    the single-timer rule bounds ticks, not callback duration.

    Usage:
        interval = BackgroundAwareInterval(refresh, 2.0, visibility=monitor)
        interval.start()
        ...
        interval.dispose()
    """

    def __init__(
        self,
        callback: Callable[[], Any],
        delay: float,
        *,
        immediate: bool = True,
        visibility: VisibilityMonitor | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the interval without starting it.

        Args:
            callback: Zero-argument function to run on every tick
            delay: Period in seconds
            immediate: Run the callback once when (re)starting
            visibility: Visibility source (default: always visible)
            clock: Timer source (default: the running asyncio loop)
        """
        if delay <= 0:
            raise ValueError("delay must be > 0")
        self._callback = callback
        self._delay = delay
        self._immediate = immediate
        self._visibility = visibility or VisibilityMonitor()
        self._clock = clock
        self._timer: TimerHandle | None = None
        self._running = False
        self._disposed = False
        self._tasks: set[asyncio.Future[Any]] = set()
        self._unsubscribe = self._visibility.subscribe(self._on_visibility_change)

    @property
    def callback(self) -> Callable[[], Any]:
        """Get the callback used for the next tick."""
        return self._callback

    @callback.setter
    def callback(self, callback: Callable[[], Any]) -> None:
        self._callback = callback

    @property
    def delay(self) -> float:
        """Get the period in seconds."""
        return self._delay

    @delay.setter
    def delay(self, delay: float) -> None:
        if delay <= 0:
            raise ValueError("delay must be > 0")
        if delay == self._delay:
            return
        self._delay = delay
        if self._timer is not None:
            self._disarm()
            self._arm()

    @property
    def is_running(self) -> bool:
        """Whether the interval is logically started."""
        return self._running

    @property
    def is_armed(self) -> bool:
        """Whether a timer is currently scheduled."""
        return self._timer is not None

    @property
    def in_flight(self) -> int:
        """Number of callback coroutines still running."""
        return len(self._tasks)

    def start(self) -> None:
        """Start ticking; a no-op if already started."""
        if self._disposed:
            raise RuntimeError("Interval has been disposed")
        if self._running:
            return
        self._running = True
        if self._visibility.is_visible:
            self._resume()

    def stop(self) -> None:
        """Stop ticking; safe to call repeatedly."""
        self._running = False
        self._disarm()

    def restart(self) -> None:
        """Stop and start again."""
        self.stop()
        self.start()

    def dispose(self) -> None:
        """Cancel any timer and detach from the visibility source."""
        self.stop()
        self._unsubscribe()
        self._disposed = True

    def __enter__(self) -> "BackgroundAwareInterval":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.dispose()

    def _resume(self) -> None:
        if self._timer is not None:
            return
        if self._immediate:
            self._invoke()
            # The callback may have stopped us or hidden the host
            if not self._running or not self._visibility.is_visible or self._timer is not None:
                return
        self._arm()

    def _arm(self) -> None:
        if self._clock is None:
            self._clock = asyncio.get_running_loop()
        self._timer = self._clock.call_later(self._delay, self._tick)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _tick(self) -> None:
        self._timer = None
        if not self._running or not self._visibility.is_visible:
            return
        self._arm()
        self._invoke()

    def _invoke(self) -> None:
        try:
            result = self._callback()
        except Exception:
            logger.exception("Interval callback failed")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Future[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Interval callback coroutine failed", exc_info=task.exception())

    def _on_visibility_change(self, visible: bool) -> None:
        if not visible:
            self._disarm()
        elif self._running:
            self._resume()
