"""
In-process Task Scheduling

This package runs user callbacks on timers held by the host's event loop.

Core Concepts:

Task:
    A Task is a record describing one unit of work: when it becomes eligible
    (start_at), when it stops being eligible (expire_at), whether it is enabled
    (a flag or a predicate), and the callback to run.
    Interval tasks repeat every `interval` milliseconds, one-time tasks run once
    and are removed, cron tasks run on every match of a cron expression.

Runner:
    A Runner owns a store of Tasks of one kind and the timer registered for each
    of them. Adding, updating or removing a task through the runner creates,
    replaces or cancels its timer, so at most one timer exists per task.

Timers and Clock:
    Runners read time from a Clock and schedule through a TimerFactory. The
    defaults use the system clock and the running asyncio event loop.

Relationships:
    - A Runner holds many Tasks; each Task has at most one active timer.
    - A TaskStorage can snapshot a Runner's Tasks; it never schedules them.
"""

from .domain import *
from .runners import *
from .timers import AsyncioTimers, SystemClock

__all__ = [
    "Task", "TaskType", "IntervalTask", "OneTimeTask", "CronTask",
    "IntervalTaskCreate", "OneTimeTaskCreate", "CronTaskCreate",
    "IntervalTaskUpdate", "OneTimeTaskUpdate", "CronTaskUpdate",
    "generate_task_id",
    "BaseRunner", "RunnerConfig", "IntervalTaskRunner", "OneTimeTaskRunner", "CronTaskRunner",
    "AsyncioTimers", "SystemClock",
]
