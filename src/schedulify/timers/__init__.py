from .protocol import Clock, TimerFactory, TimerHandle
from .event_loop import AsyncioTimers, PeriodicTimer, SystemClock, MIN_INTERVAL_MS

__all__ = ["Clock", "TimerFactory", "TimerHandle", "AsyncioTimers", "PeriodicTimer", "SystemClock", "MIN_INTERVAL_MS"]
