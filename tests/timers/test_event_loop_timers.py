import asyncio
from datetime import timezone

import pytest

from schedulify.timers.event_loop import MIN_INTERVAL_MS, AsyncioTimers, PeriodicTimer, SystemClock


def test_system_clock_is_utc() -> None:
    assert SystemClock().now().tzinfo == timezone.utc


def test_timers_need_a_running_loop_when_none_given() -> None:
    with pytest.raises(RuntimeError):
        AsyncioTimers().call_later(10, lambda: None)


@pytest.mark.asyncio
async def test_call_later_fires_once() -> None:
    fired = asyncio.Event()
    calls = []

    def callback() -> None:
        calls.append(1)
        fired.set()

    AsyncioTimers().call_later(10, callback)
    await asyncio.wait_for(fired.wait(), timeout=1)
    await asyncio.sleep(0.05)

    assert calls == [1]


@pytest.mark.asyncio
async def test_call_later_cancel() -> None:
    calls = []

    handle = AsyncioTimers().call_later(20, lambda: calls.append(1))
    handle.cancel()
    handle.cancel()
    await asyncio.sleep(0.05)

    assert calls == []


@pytest.mark.asyncio
async def test_call_every_ticks_until_cancelled() -> None:
    calls = []

    timer = AsyncioTimers().call_every(10, lambda: calls.append(1))
    await asyncio.sleep(0.055)
    timer.cancel()
    count = len(calls)
    await asyncio.sleep(0.05)

    assert count >= 3
    assert len(calls) == count
    assert timer.cancelled()


@pytest.mark.asyncio
async def test_periodic_timer_clamps_interval() -> None:
    loop = asyncio.get_running_loop()

    timer = PeriodicTimer(loop, 0, lambda: None)

    assert timer._period == MIN_INTERVAL_MS / 1000
    timer.cancel()


@pytest.mark.asyncio
async def test_periodic_timer_survives_callback_error() -> None:
    loop = asyncio.get_running_loop()
    errors = []
    loop.set_exception_handler(lambda _loop, context: errors.append(context["exception"]))
    calls = []

    def callback() -> None:
        calls.append(1)
        raise ValueError("tick failed")

    timer = AsyncioTimers(loop).call_every(10, callback)
    try:
        await asyncio.sleep(0.055)
    finally:
        timer.cancel()
        loop.set_exception_handler(None)

    assert len(calls) >= 2
    assert all(isinstance(e, ValueError) for e in errors)
    assert len(errors) == len(calls)
