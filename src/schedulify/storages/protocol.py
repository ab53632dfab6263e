from typing import List, Optional, Protocol

from schedulify.domain.task import TaskType
from schedulify.runners.base import BaseRunner
from schedulify.storages.snapshot import TaskSnapshot


class TaskStorage(Protocol):
    async def save_task(self, snapshot: TaskSnapshot) -> str:
        """Insert or replace a task snapshot and return its ID."""
        ...

    async def get_task(self, task_id: str) -> Optional[TaskSnapshot]:
        """Retrieve a task snapshot by its ID."""
        ...

    async def delete_task(self, task_id: str) -> bool:
        """Delete a task snapshot by its ID. Return True if it existed, False otherwise."""
        ...

    async def list_tasks(self, limit: int = 100, offset: int = 0, task_type: Optional[TaskType] = None) -> List[TaskSnapshot]:
        """List task snapshots in creation order with pagination."""
        ...

    async def sync(self, runner: BaseRunner) -> int:
        """Mirror the runner's current tasks and return the number of snapshots written."""
        ...
