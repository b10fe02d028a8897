"""Interrupt sources and subscriptions.

An interrupt source is one origin of activity signals. A subscription wraps
a source for the idle controller, balances its attach/detach hooks and gates
delivery of its signals.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from .events import EventEmitter

logger = logging.getLogger(__name__)

# Type alias for attach/detach hooks
Hook = Callable[[], None]

# Type alias for subscription listeners
InterruptListener = Callable[["InterruptArgs"], None]


class SourceError(Exception):
    """Error starting or running an interrupt source."""

    pass


@dataclass
class InterruptArgs:
    """A signal emitted by an interrupt source."""

    source: "InterruptSource"
    inner_args: Any = None
    force: bool = False


class InterruptSource:
    """Base class for interrupt sources.

    Subclasses either pass attach/detach callables or override attach() and
    detach() to start and stop listening for activity, and call
    on_interrupt.emit() with an InterruptArgs when activity occurs.
    """

    def __init__(
        self,
        attach: Hook | None = None,
        detach: Hook | None = None,
    ) -> None:
        """Initialize the interrupt source.

        Args:
            attach: Optional hook called when a subscription activates.
            detach: Optional hook called when a subscription deactivates.
        """
        self._attach_fn = attach
        self._detach_fn = detach
        self.on_interrupt: EventEmitter[InterruptArgs] = EventEmitter(
            f"{type(self).__name__} interrupt"
        )

    def attach(self) -> None:
        """Begin listening for activity."""
        if self._attach_fn is not None:
            self._attach_fn()

    def detach(self) -> None:
        """Stop listening for activity."""
        if self._detach_fn is not None:
            self._detach_fn()


class ManualInterruptSource(InterruptSource):
    """Interrupt source fired explicitly by the embedder."""

    def trigger(self, inner_args: Any = None, force: bool = False) -> None:
        """Emit an interrupt.

        Args:
            inner_args: The original event data, if any.
            force: Whether the interrupt should resume regardless of policy.
        """
        self.on_interrupt.emit(InterruptArgs(self, inner_args, force))


class Interrupt:
    """Subscription to a single interrupt source.

    Signals are forwarded to the registered listener only while the
    subscription is active, even if the source keeps emitting.
    """

    def __init__(self, source: InterruptSource) -> None:
        self.source = source
        self._active = False
        self._listener: InterruptListener | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def active(self) -> bool:
        """Whether signals are currently forwarded."""
        return self._active

    def subscribe(self, listener: InterruptListener) -> None:
        """Register the listener that receives forwarded signals.

        Replaces any previously registered listener.
        """
        self.unsubscribe()
        self._listener = listener
        self._unsubscribe = self.source.on_interrupt.subscribe(self._forward)

    def unsubscribe(self) -> None:
        """Permanently disconnect the listener."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._listener = None

    def resume(self) -> None:
        """Attach the source and start forwarding."""
        if self._active:
            return
        self.source.attach()
        self._active = True
        logger.debug(f"Resumed interrupt source {type(self.source).__name__}")

    def pause(self) -> None:
        """Detach the source and stop forwarding."""
        if not self._active:
            return
        self.source.detach()
        self._active = False
        logger.debug(f"Paused interrupt source {type(self.source).__name__}")

    def _forward(self, args: InterruptArgs) -> None:
        if not self._active or self._listener is None:
            return
        self._listener(args)
