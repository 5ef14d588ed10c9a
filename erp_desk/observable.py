"""Observable state holders and a debounce timer for the view models."""
import threading
from typing import Callable, Generic, List, Optional, TypeVar

from .logging_config import get_logger

logger = get_logger("observable")

T = TypeVar("T")


class Observable(Generic[T]):
    """A value that notifies subscribers when it changes.

    Subscribers are called with ``(new, old)`` on the setting thread.
    Assigning an equal value is not a change.
    """

    def __init__(self, value: T, name: str = ""):
        self._value = value
        self.name = name
        self._subscribers: List[Callable[[T, T], None]] = []
        self._lock = threading.Lock()

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, new: T):
        self.set(new)

    def set(self, new: T, force: bool = False):
        old = self._value
        if not force and new == old:
            return
        self._value = new
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(new, old)
            except Exception:
                logger.exception(f"Subscriber of {self.name or 'observable'} failed")

    def subscribe(self, callback: Callable[[T, T], None]) -> Callable[[], None]:
        """Register a callback and return a function that removes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


class Debouncer:
    """Collapse bursts of triggers into one call after a quiet period.

    A delay of zero runs the callback synchronously on ``trigger``.
    """

    def __init__(self, delay_seconds: float, callback: Callable[[], None]):
        self.delay = delay_seconds
        self.callback = callback
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def trigger(self):
        if self.delay <= 0:
            self.callback()
            return
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self):
        with self._lock:
            self._timer = None
        self.callback()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def flush(self):
        """Run a pending call now instead of waiting for the timer."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            self.callback()

    def cancel(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
