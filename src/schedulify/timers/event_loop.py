import asyncio
from datetime import datetime, timezone
from typing import Optional

from schedulify.timers.protocol import TimerCallback

MIN_INTERVAL_MS = 1.0


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class PeriodicTimer:
    """
    Repeating timer built on loop.call_at.

    Deadlines advance by a fixed period from the previous deadline, so a slow
    callback does not push later ticks back. The next tick is armed before the
    callback runs; an exception raised by the callback reaches the loop's
    exception handler and the timer keeps ticking.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, callback: TimerCallback):
        self._loop = loop
        self._period: float = max(interval, MIN_INTERVAL_MS) / 1000
        self._callback = callback
        self._deadline: float = loop.time()
        self._handle: Optional[asyncio.TimerHandle] = None
        self._cancelled: bool = False

    def start(self) -> "PeriodicTimer":
        self._arm()
        return self

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def cancelled(self) -> bool:
        return self._cancelled

    def _arm(self) -> None:
        self._deadline += self._period
        self._handle = self._loop.call_at(self._deadline, self._run)

    def _run(self) -> None:
        if self._cancelled:
            return
        self._arm()
        self._callback()


class AsyncioTimers:
    """
    Timer primitive backed by an asyncio event loop.

    If no loop is given, the running loop is looked up each time a timer is
    created, so the factory can be built outside of a coroutine.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self.loop is not None:
            return self.loop
        return asyncio.get_running_loop()

    def call_later(self, delay: float, callback: TimerCallback) -> asyncio.TimerHandle:
        return self._get_loop().call_later(max(0.0, delay) / 1000, callback)

    def call_every(self, interval: float, callback: TimerCallback) -> PeriodicTimer:
        return PeriodicTimer(self._get_loop(), interval, callback).start()
