"""Idle detection controller.

Watches for an absence of interrupts over a configurable window, switches
into the idle state, optionally counts down to a hard timeout, and resumes
on interrupts according to the auto-resume policy.
"""

import logging
import math
from enum import Enum
from typing import Any, Iterable

from .events import EventEmitter
from .interrupt import Interrupt, InterruptArgs, InterruptSource
from .timers import AsyncioTimerService, TimerHandle, TimerService

logger = logging.getLogger(__name__)

DEFAULT_IDLE = 20 * 60
DEFAULT_TIMEOUT = 30
COUNTDOWN_INTERVAL = 1


class InvalidArgumentError(ValueError):
    """A configuration value was rejected."""

    pass


class AutoResume(Enum):
    """Whether interrupts automatically resume watching."""

    DISABLED = "disabled"
    # Resume even if the user is already idle
    IDLE = "resume-always"
    # Resume only if the user is not yet idle
    NOT_IDLE = "resume-only-if-not-idle"


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


class Idle:
    """Detects and responds to user idleness.

    States:
        Stopped: not running, not idling.
        Running-Active: running, not idling; the idle timer is pending.
        Running-Idle: running and idling; the countdown may be pending.
        TimedOut: not running, idling, countdown 0. Left via watch().

    All methods and timer callbacks are expected to run on a single event
    loop. Use as a context manager (or call dispose()) to guarantee timers
    are cancelled and interrupt sources detached on teardown.
    """

    def __init__(self, timers: TimerService | None = None) -> None:
        """Initialize the controller.

        Args:
            timers: Timer service to schedule on. Defaults to an
                    AsyncioTimerService bound to the running loop.
        """
        self._timers = timers if timers is not None else AsyncioTimerService()
        self._idle: float = DEFAULT_IDLE
        self._timeout: float = DEFAULT_TIMEOUT
        self._auto_resume = AutoResume.IDLE
        self._interrupts: list[Interrupt] = []
        self._running = False
        self._idling = False
        self._countdown = 0
        self._idle_handle: TimerHandle | None = None
        self._timeout_handle: TimerHandle | None = None

        self.on_idle_start: EventEmitter[None] = EventEmitter("idle start")
        self.on_idle_end: EventEmitter[None] = EventEmitter("idle end")
        self.on_timeout_warning: EventEmitter[int] = EventEmitter("timeout warning")
        self.on_timeout: EventEmitter[None] = EventEmitter("timeout")
        self.on_interrupt: EventEmitter[Any] = EventEmitter("interrupt")

    def __enter__(self) -> "Idle":
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    def get_timeout(self) -> float:
        """Seconds from idle start until hard timeout. 0 when disabled."""
        return self._timeout

    def set_timeout(self, seconds: float | bool) -> float:
        """Set the timeout.

        Args:
            seconds: Seconds of countdown, or False (or 0) to disable.

        Returns:
            The stored value; 0 if disabled.

        Raises:
            InvalidArgumentError: If seconds is negative or not a finite number.
        """
        if seconds is False:
            self._timeout = 0
        elif _is_number(seconds) and seconds >= 0:
            self._timeout = seconds
        else:
            raise InvalidArgumentError(
                "'seconds' can only be False or a finite non-negative number"
            )
        return self._timeout

    def get_idle(self) -> float:
        """Seconds of inactivity before the user is considered idle."""
        return self._idle

    def set_idle(self, seconds: float) -> float:
        """Set the idle duration.

        Raises:
            InvalidArgumentError: If seconds is not a finite number greater than zero.
        """
        if not _is_number(seconds) or seconds <= 0:
            raise InvalidArgumentError(
                "'seconds' must be a finite number greater than zero"
            )
        self._idle = seconds
        return self._idle

    def get_auto_resume(self) -> AutoResume:
        return self._auto_resume

    def set_auto_resume(self, value: AutoResume | str) -> AutoResume:
        """Set the auto resume policy.

        Args:
            value: An AutoResume member or its string value.

        Raises:
            InvalidArgumentError: If value is not a known policy.
        """
        try:
            self._auto_resume = AutoResume(value)
        except ValueError as e:
            raise InvalidArgumentError(f"Unknown auto resume policy: {value!r}") from e
        return self._auto_resume

    def set_interrupts(self, sources: Iterable[InterruptSource]) -> list[Interrupt]:
        """Replace the interrupt subscriptions.

        All current subscriptions are paused before any new source is
        attached.

        Args:
            sources: Interrupt sources to subscribe to.

        Returns:
            The new subscriptions.
        """
        self.clear_interrupts()

        for source in sources:
            sub = Interrupt(source)
            sub.subscribe(self._handle_interrupt)
            sub.resume()
            self._interrupts.append(sub)

        logger.debug(f"Subscribed to {len(self._interrupts)} interrupt source(s)")
        return self._interrupts

    def get_interrupts(self) -> list[Interrupt]:
        return self._interrupts

    def clear_interrupts(self) -> None:
        """Pause, unsubscribe and remove the current subscriptions."""
        for sub in self._interrupts:
            sub.pause()
            sub.unsubscribe()
        self._interrupts.clear()

    def is_running(self) -> bool:
        """Whether the controller is watching for idleness."""
        return self._running

    def is_idling(self) -> bool:
        """Whether the user is considered idle."""
        return self._idling

    def get_countdown(self) -> int:
        """Seconds left before timeout. Only meaningful while idling."""
        return self._countdown

    def watch(self) -> None:
        """Start watching for inactivity, resetting the idle window."""
        self._cancel_timers()

        if self._idling:
            self._toggle_state()

        self._running = True
        self._idle_handle = self._timers.schedule_repeating(
            self._idle, self._toggle_state
        )
        logger.debug(f"Watching for {self._idle}s of inactivity")

    def stop(self) -> None:
        """Stop watching for inactivity."""
        self._cancel_timers()
        self._idling = False
        self._running = False
        logger.debug("Stopped watching")

    def timeout(self) -> None:
        """Force the timed out state and emit on_timeout."""
        self._cancel_timers()
        self._idling = True
        self._running = False
        self._countdown = 0

        logger.info("Timed out")
        self.on_timeout.emit(None)

    def interrupt(self, force: bool = False, inner_args: Any = None) -> None:
        """Signal that activity has occurred.

        Ignored unless running. Emits on_interrupt, then resumes watching if
        forced or if the auto resume policy allows it.

        Args:
            force: Resume watching regardless of the auto resume policy.
            inner_args: The originating event data, passed to on_interrupt.
        """
        if not self._running:
            return

        self.on_interrupt.emit(inner_args)

        if (
            force is True
            or self._auto_resume is AutoResume.IDLE
            or (self._auto_resume is AutoResume.NOT_IDLE and not self._idling)
        ):
            self.watch()
        else:
            logger.debug(
                f"Interrupt ignored (auto resume {self._auto_resume.value}, "
                f"idling={self._idling})"
            )

    def dispose(self) -> None:
        """Stop watching and release all interrupt sources."""
        self.stop()
        self.clear_interrupts()

    def _handle_interrupt(self, args: InterruptArgs) -> None:
        self.interrupt(args.force, args.inner_args)

    def _toggle_state(self) -> None:
        self._timers.cancel(self._idle_handle)
        self._idle_handle = None
        self._idling = not self._idling

        if self._idling:
            logger.info("User is now idle")
            self.on_idle_start.emit(None)

            # Listeners may have resumed or stopped the controller
            if self._timeout > 0 and self._idling and self._running:
                self._countdown = math.ceil(self._timeout)
                self._do_countdown()
                if self._idling and self._running:
                    self._timeout_handle = self._timers.schedule_repeating(
                        COUNTDOWN_INTERVAL, self._do_countdown
                    )
        else:
            logger.info("User is now active")
            self.on_idle_end.emit(None)

    def _do_countdown(self) -> None:
        if not self._idling:
            return

        if self._countdown <= 0:
            self.timeout()
            return

        logger.debug(f"Timeout in {self._countdown}s")
        self.on_timeout_warning.emit(self._countdown)
        self._countdown -= 1

    def _cancel_timers(self) -> None:
        self._timers.cancel(self._idle_handle)
        self._idle_handle = None
        self._timers.cancel(self._timeout_handle)
        self._timeout_handle = None
