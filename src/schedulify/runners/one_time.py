import logging
from typing import Any, Mapping, Optional, Union

from schedulify.domain.task import OneTimeTask, OneTimeTaskCreate, OneTimeTaskUpdate, TaskType
from schedulify.runners.base import BaseRunner, ms_between

logger = logging.getLogger(__name__)


class OneTimeTaskRunner(BaseRunner[OneTimeTask]):
    """
    Runs each task once at its `start_at`, then removes it.

    Removal happens whether or not the callback raised, so an executed
    one-time task never stays in the runner.
    """

    task_type = TaskType.ONE_TIME
    create_schema = OneTimeTaskCreate
    update_schema = OneTimeTaskUpdate

    def add_task(
        self,
        data: Union[Mapping[str, Any], OneTimeTaskCreate, None] = None,
        **fields: Any,
    ) -> OneTimeTask:
        payload = self._parse_payload(OneTimeTaskCreate, data, fields)
        task = OneTimeTask(**self._new_task_fields(), **self._payload_fields(payload))
        return self._store_task(task)

    def update_task(
        self,
        task_id: str,
        data: Union[Mapping[str, Any], OneTimeTaskUpdate, None] = None,
        **changes: Any,
    ) -> Optional[OneTimeTask]:
        updated_task = super().update_task(task_id, data, **changes)
        if updated_task is not None and self.is_running:
            self._schedule_task(updated_task)
        return updated_task

    def _schedule_task(self, task: OneTimeTask) -> None:
        if not self.can_schedule_task(task):
            return

        delay = max(0.0, ms_between(task.start_at, self.now()))
        handle = self.timer_factory.call_later(delay, lambda: self._execute_task(task.id))
        self._add_timer(task.id, handle)
        logger.debug("Task %s runs in %.0f ms", task.id, delay)

    def _execute_task(self, task_id: str) -> None:
        task = self.get_task(task_id)
        if task is None:
            return

        if self.is_task_expired(task):
            self.remove_task(task_id)
            return

        try:
            self._run_callback(task)
        finally:
            self.remove_task(task_id)
