from .task import (
    Task,
    TaskType,
    IntervalTask,
    OneTimeTask,
    CronTask,
    IntervalTaskCreate,
    OneTimeTaskCreate,
    CronTaskCreate,
    IntervalTaskUpdate,
    OneTimeTaskUpdate,
    CronTaskUpdate,
    generate_task_id,
)

__all__ = [
    "Task", "TaskType", "IntervalTask", "OneTimeTask", "CronTask",
    "IntervalTaskCreate", "OneTimeTaskCreate", "CronTaskCreate",
    "IntervalTaskUpdate", "OneTimeTaskUpdate", "CronTaskUpdate",
    "generate_task_id",
]
