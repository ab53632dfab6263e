import logging
from typing import Any, Mapping, Optional, Union

from schedulify.domain.task import IntervalTask, IntervalTaskCreate, IntervalTaskUpdate, TaskType
from schedulify.runners.base import BaseRunner, ms_between

logger = logging.getLogger(__name__)


class IntervalTaskRunner(BaseRunner[IntervalTask]):
    """
    Runs tasks repeatedly every `interval` milliseconds.

    A task whose `start_at` lies in the future waits on a one-shot timer and
    enters its repeating phase at `start_at`; the first execution follows one
    interval later. Expiry is checked on every tick: a tick that finds the
    task expired removes it instead of running it.
    """

    task_type = TaskType.INTERVAL
    create_schema = IntervalTaskCreate
    update_schema = IntervalTaskUpdate

    def add_task(
        self,
        data: Union[Mapping[str, Any], IntervalTaskCreate, None] = None,
        **fields: Any,
    ) -> IntervalTask:
        """
        Create an interval task and schedule it if the runner is running.

        Args:
            data: Creation payload; `interval`, `start_at` and `callback` are required.
            **fields: Payload fields given as keyword arguments.

        Returns:
            IntervalTask: The stored task with its generated id.
        """
        payload = self._parse_payload(IntervalTaskCreate, data, fields)
        task = IntervalTask(
            **self._new_task_fields(),
            **self._payload_fields(payload),
            last_run_at=None,
            total_run_count=0,
        )
        return self._store_task(task)

    def update_task(
        self,
        task_id: str,
        data: Union[Mapping[str, Any], IntervalTaskUpdate, None] = None,
        **changes: Any,
    ) -> Optional[IntervalTask]:
        updated_task = super().update_task(task_id, data, **changes)
        if updated_task is not None and self.is_running:
            self._schedule_task(updated_task)
        return updated_task

    def _schedule_task(self, task: IntervalTask) -> None:
        if not self.can_schedule_task(task):
            return
        if self.is_task_for_future(task):
            self._schedule_task_for_future(task)
        else:
            self._start_interval(task.id)

    def _schedule_task_for_future(self, task: IntervalTask) -> None:
        delay = max(0.0, ms_between(task.start_at, self.now()))
        handle = self.timer_factory.call_later(delay, lambda: self._start_interval(task.id))
        self._add_timer(task.id, handle)
        logger.debug("Task %s starts in %.0f ms", task.id, delay)

    def _start_interval(self, task_id: str) -> None:
        task = self.get_task(task_id)
        if task is None:
            return
        handle = self.timer_factory.call_every(task.interval, lambda: self._execute_task(task_id))
        self._add_timer(task_id, handle)
        logger.debug("Task %s runs every %s ms", task_id, task.interval)

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
            task.record_run(self.now())
