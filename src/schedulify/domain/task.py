import logging
import math
import uuid
from abc import ABC
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Union
from zoneinfo import ZoneInfo

from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

TaskCallback = Callable[[], Any]
TaskEnabled = Union[bool, Callable[[], bool]]
RemoveObserver = Callable[[Any], Any]


def generate_task_id() -> str:
    return f"tsk_{uuid.uuid4().hex}"


def _ensure_timezone(v: Optional[datetime]) -> Optional[datetime]:
    if v is not None and v.tzinfo is None:
        logger.warning("Datetime does not include a timezone. Defaulting to UTC+0 so that it can be "
                       "compared against the scheduler clock.")
        return v.replace(tzinfo=ZoneInfo("UTC"))
    return v


class TaskType(str, Enum):
    INTERVAL = "interval"
    ONE_TIME = "one_time"
    CRON = "cron"


class Task(BaseModel, ABC):
    """
    Base record for a schedulable unit of work owned by a runner.
    """
    model_config = ConfigDict(validate_assignment=True)

    type: TaskType
    id: str = Field(default_factory=generate_task_id, description="Unique task identifier")
    name: Optional[str] = Field(None, description="Human readable label, no effect on scheduling")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(ZoneInfo("UTC")),
        description="Task creation timestamp with UTC timezone"
    )
    start_at: datetime = Field(..., description="Instant at or after which the task is eligible to run")
    expire_at: Optional[datetime] = Field(None, description="Instant after which the task no longer runs, None for never")
    enabled: TaskEnabled = Field(default=True, description="Fixed flag or zero-argument predicate gating eligibility")
    callback: TaskCallback = Field(..., description="Work to perform, may return an awaitable")
    on_remove: Optional[RemoveObserver] = Field(None, description="Called with the record when it leaves the runner")

    @field_validator('created_at', 'start_at', 'expire_at')
    def check_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _ensure_timezone(v)

    def is_enabled(self) -> bool:
        if callable(self.enabled):
            return bool(self.enabled())
        return self.enabled

    @property
    def never_expires(self) -> bool:
        return self.expire_at is None


class RunStats(BaseModel):
    """
    Bookkeeping shared by repeating tasks. Only touched after a callback ran.
    """
    last_run_at: Optional[datetime] = Field(None, description="When the callback last ran")
    total_run_count: int = Field(default=0, ge=0, description="Number of completed callback invocations")

    @field_validator('last_run_at')
    def check_last_run_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _ensure_timezone(v)

    def record_run(self, ran_at: datetime) -> None:
        self.last_run_at = ran_at
        self.total_run_count += 1


def _check_interval(v: float) -> float:
    if not math.isfinite(v) or v < 0:
        raise ValueError("interval must be a non-negative finite number of milliseconds")
    return v


def _check_cron_expression(v: str) -> str:
    if len(v.split()) not in (5, 6):
        raise ValueError(f"Invalid cron expression: {v!r}")
    # raises CroniterError, a ValueError subclass, on malformed fields
    croniter(v, second_at_beginning=True)
    return v


class IntervalTask(Task, RunStats):
    """
    Task executed repeatedly every `interval` milliseconds.
    """
    type: TaskType = TaskType.INTERVAL
    interval: float = Field(..., description="Milliseconds between successive executions")

    @field_validator('interval')
    def check_interval(cls, v: float) -> float:
        return _check_interval(v)


class OneTimeTask(Task):
    """
    Task executed once at `start_at`, then removed from its runner.
    """
    type: TaskType = TaskType.ONE_TIME


class CronTask(Task, RunStats):
    """
    Task executed on every match of a cron expression.
    A six-field expression carries seconds in the first field.
    """
    type: TaskType = TaskType.CRON
    cron_expression: str = Field(..., description="Cron expression defining the recurring execution pattern")

    @field_validator('cron_expression')
    def check_cron_expression(cls, v: str) -> str:
        return _check_cron_expression(v)


class TaskCreate(BaseModel):
    """
    Fields a caller may supply when adding a task. `id` and `created_at`
    are assigned by the runner.
    """
    model_config = ConfigDict(extra="forbid")

    start_at: datetime
    name: Optional[str] = None
    expire_at: Optional[datetime] = None
    enabled: TaskEnabled = True
    callback: TaskCallback
    on_remove: Optional[RemoveObserver] = None

    @field_validator('start_at', 'expire_at')
    def check_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _ensure_timezone(v)


class IntervalTaskCreate(TaskCreate):
    interval: float

    @field_validator('interval')
    def check_interval(cls, v: float) -> float:
        return _check_interval(v)


class OneTimeTaskCreate(TaskCreate):
    pass


class CronTaskCreate(TaskCreate):
    cron_expression: str

    @field_validator('cron_expression')
    def check_cron_expression(cls, v: str) -> str:
        return _check_cron_expression(v)


class TaskUpdate(BaseModel):
    """
    Partial update. Only the fields explicitly set are applied to the record.
    """
    model_config = ConfigDict(extra="forbid")

    start_at: Optional[datetime] = None
    name: Optional[str] = None
    expire_at: Optional[datetime] = None
    enabled: Optional[TaskEnabled] = None
    callback: Optional[TaskCallback] = None
    on_remove: Optional[RemoveObserver] = None


class IntervalTaskUpdate(TaskUpdate):
    interval: Optional[float] = None


class OneTimeTaskUpdate(TaskUpdate):
    pass


class CronTaskUpdate(TaskUpdate):
    cron_expression: Optional[str] = None
