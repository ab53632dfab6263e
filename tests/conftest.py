import heapq
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional
from unittest.mock import Mock

import pytest

from schedulify.domain.task import CronTask, IntervalTask, OneTimeTask
from schedulify.timers.event_loop import MIN_INTERVAL_MS


class ManualTimer:
    def __init__(self, due: datetime, callback: Callable[[], Any], interval: Optional[float]):
        self.due = due
        self.callback = callback
        self.interval = interval
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimers:
    """
    Clock and timer factory on virtual time. Nothing fires until advance().

    Like an event loop, callback exceptions do not stop other timers; they are
    collected in `errors`.
    """

    def __init__(self, start: datetime):
        self._now = start
        self._queue: List[tuple] = []
        self._seq = itertools.count()
        self.errors: List[Exception] = []

    def now(self) -> datetime:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], Any]) -> ManualTimer:
        due = self._now + timedelta(milliseconds=max(0.0, delay))
        return self._schedule(ManualTimer(due, callback, None))

    def call_every(self, interval: float, callback: Callable[[], Any]) -> ManualTimer:
        period = max(interval, MIN_INTERVAL_MS)
        due = self._now + timedelta(milliseconds=period)
        return self._schedule(ManualTimer(due, callback, period))

    @property
    def active_count(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def advance(self, ms: float) -> None:
        target = self._now + timedelta(milliseconds=ms)
        while self._queue and self._queue[0][0] <= target:
            due, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = due
            if timer.interval is not None:
                timer.due = due + timedelta(milliseconds=timer.interval)
                self._schedule(timer)
            try:
                timer.callback()
            except Exception as e:
                self.errors.append(e)
        self._now = target

    def _schedule(self, timer: ManualTimer) -> ManualTimer:
        heapq.heappush(self._queue, (timer.due, next(self._seq), timer))
        return timer


START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def timers() -> ManualTimers:
    return ManualTimers(START)


@pytest.fixture(scope="function")
def runner_kwargs(timers: ManualTimers) -> dict:
    return {"clock": timers, "timers": timers}


@pytest.fixture(scope="function")
def make_interval_task(timers: ManualTimers) -> Callable[..., IntervalTask]:
    def _make(**overrides: Any) -> IntervalTask:
        fields = {
            "interval": 1000,
            "start_at": timers.now(),
            "callback": Mock(),
            "name": "task",
        }
        fields.update(overrides)
        return IntervalTask(**fields)
    return _make


@pytest.fixture(scope="function")
def make_one_time_task(timers: ManualTimers) -> Callable[..., OneTimeTask]:
    def _make(**overrides: Any) -> OneTimeTask:
        fields = {
            "start_at": timers.now(),
            "callback": Mock(),
            "name": "task",
        }
        fields.update(overrides)
        return OneTimeTask(**fields)
    return _make


@pytest.fixture(scope="function")
def make_cron_task(timers: ManualTimers) -> Callable[..., CronTask]:
    def _make(**overrides: Any) -> CronTask:
        fields = {
            "cron_expression": "* * * * *",
            "start_at": timers.now(),
            "callback": Mock(),
            "name": "task",
        }
        fields.update(overrides)
        return CronTask(**fields)
    return _make
