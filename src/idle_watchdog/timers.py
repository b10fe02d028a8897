"""Timer services used by the idle controller.

Defines the abstract interface the controller schedules against and an
asyncio-backed implementation that runs callbacks on the event loop.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)

# Type alias for timer callbacks
TimerCallback = Callable[[], None]


class TimerHandle:
    """Opaque handle for a scheduled repeating timer."""

    def __init__(self, interval: float, callback: TimerCallback) -> None:
        self.interval = interval
        self.callback = callback
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        """Whether the timer has been cancelled."""
        return self._cancelled

    def cancel(self) -> None:
        """Mark the timer cancelled. Safe to call repeatedly."""
        self._cancelled = True


class TimerService(ABC):
    """Abstract base class for timer services.

    Implementations schedule repeating callbacks on a serialized queue: no
    two callbacks run concurrently, and a callback runs to completion before
    the next one starts.

    Implementations must:
        - Never invoke a callback after its handle was cancelled, including
          when the cancellation happens inside the callback itself
        - Treat cancel(None) and cancelling twice as a no-op
    """

    @abstractmethod
    def schedule_repeating(
        self, interval: float, callback: TimerCallback
    ) -> TimerHandle:
        """Schedule callback every interval seconds.

        Args:
            interval: Seconds between invocations. Must be positive.
            callback: Zero-argument callable.

        Returns:
            Handle that can be passed to cancel().
        """
        pass

    @abstractmethod
    def cancel(self, handle: TimerHandle | None) -> None:
        """Cancel a scheduled timer.

        Args:
            handle: Handle from schedule_repeating(), or None.
        """
        pass


class _AsyncioTimerHandle(TimerHandle):
    """Repeating timer driven by loop.call_at()."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        interval: float,
        callback: TimerCallback,
    ) -> None:
        super().__init__(interval, callback)
        self._loop = loop
        self._deadline = loop.time()
        self._timer: asyncio.TimerHandle | None = None

    def start(self) -> None:
        self._schedule_next()

    def cancel(self) -> None:
        super().cancel()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_next(self) -> None:
        # Deadlines accumulate so slow callbacks do not drift the schedule
        self._deadline += self.interval
        self._timer = self._loop.call_at(self._deadline, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._cancelled:
            return
        try:
            self.callback()
        except Exception:
            logger.exception("Error in timer callback")
        if not self._cancelled:
            self._schedule_next()


class AsyncioTimerService(TimerService):
    """Timer service running callbacks on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Initialize the timer service.

        Args:
            loop: Event loop to schedule on. Defaults to the running loop at
                  the time of the first schedule_repeating() call.
        """
        self._loop = loop
        self._handles: set[_AsyncioTimerHandle] = set()

    @property
    def active_count(self) -> int:
        """Number of timers scheduled and not yet cancelled."""
        return sum(1 for h in self._handles if not h.cancelled)

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule_repeating(
        self, interval: float, callback: TimerCallback
    ) -> TimerHandle:
        if interval <= 0:
            raise ValueError("interval must be positive")
        handle = _AsyncioTimerHandle(self._get_loop(), interval, callback)
        handle.start()
        self._handles.add(handle)
        logger.debug(f"Scheduled repeating timer every {interval}s")
        return handle

    def cancel(self, handle: TimerHandle | None) -> None:
        if handle is None or handle.cancelled:
            return
        handle.cancel()
        self._handles.discard(handle)
        logger.debug(f"Cancelled timer (interval {handle.interval}s)")
