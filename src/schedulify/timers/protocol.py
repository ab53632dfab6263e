from datetime import datetime
from typing import Any, Callable, Protocol

TimerCallback = Callable[[], Any]


class TimerHandle(Protocol):
    def cancel(self) -> None:
        """Stop the timer. Cancelling twice is a no-op."""
        ...


class TimerFactory(Protocol):
    """
    Protocol for the timer primitive runners schedule against.
    Delays and intervals are expressed in milliseconds.
    """

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        """Run callback once after delay milliseconds."""
        ...

    def call_every(self, interval: float, callback: TimerCallback) -> TimerHandle:
        """Run callback every interval milliseconds, first run one interval from now."""
        ...


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current time as a timezone-aware datetime."""
        ...
