from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from schedulify.domain.task import Task, TaskType


class TaskSnapshot(BaseModel):
    """
    Callback-free copy of a task record, suitable for storage.

    Callbacks, removal observers and predicate `enabled` values are not
    serialized; a predicate is stored as `enabled=None`.
    """
    id: str
    type: TaskType
    name: Optional[str] = None
    created_at: datetime
    start_at: datetime
    expire_at: Optional[datetime] = None
    enabled: Optional[bool] = Field(None, description="Fixed enabled flag, None when the task uses a predicate")
    interval: Optional[float] = Field(None, description="Milliseconds between runs for interval tasks")
    cron_expression: Optional[str] = None
    last_run_at: Optional[datetime] = None
    total_run_count: Optional[int] = None

    @classmethod
    def from_task(cls, task: Task) -> "TaskSnapshot":
        return cls(
            id=task.id,
            type=task.type,
            name=task.name,
            created_at=task.created_at,
            start_at=task.start_at,
            expire_at=task.expire_at,
            enabled=None if callable(task.enabled) else task.enabled,
            interval=getattr(task, "interval", None),
            cron_expression=getattr(task, "cron_expression", None),
            last_run_at=getattr(task, "last_run_at", None),
            total_run_count=getattr(task, "total_run_count", None),
        )
