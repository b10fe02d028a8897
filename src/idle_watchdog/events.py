"""Synchronous broadcast event channels.

Used for the idle controller's lifecycle notifications and for the signal
channel of interrupt sources.
"""

import logging
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Type alias for event listeners
Listener = Callable[[T], Any]


class EventEmitter(Generic[T]):
    """Broadcasts a value to registered listeners.

    Listeners are called synchronously, in registration order. An exception
    raised by one listener is logged and does not prevent delivery to the
    remaining listeners.
    """

    def __init__(self, name: str = "event") -> None:
        self._name = name
        self._listeners: list[Listener] = []

    @property
    def name(self) -> str:
        """Name used when logging listener errors."""
        return self._name

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener.

        Args:
            listener: Callable receiving the emitted value.

        Returns:
            A callable that removes this registration. Calling it more than
            once is a no-op.
        """
        self._listeners.append(listener)
        removed = False

        def unsubscribe() -> None:
            nonlocal removed
            if removed:
                return
            removed = True
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def emit(self, value: T = None) -> None:
        """Deliver a value to every listener registered at call time."""
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception(f"Error in {self._name} listener")

    def clear(self) -> None:
        """Remove all listeners."""
        self._listeners.clear()
