import logging
from datetime import datetime
from typing import Any, Mapping, Optional, Union

from croniter import croniter

from schedulify.domain.task import CronTask, CronTaskCreate, CronTaskUpdate, TaskType
from schedulify.runners.base import BaseRunner, ms_between

logger = logging.getLogger(__name__)


class CronTaskRunner(BaseRunner[CronTask]):
    """
    Runs tasks on every match of their cron expression.

    Each match is scheduled with a one-shot timer; after a run the next match
    is computed from the clock and scheduled again. Six-field expressions are
    read with seconds first.
    """

    task_type = TaskType.CRON
    create_schema = CronTaskCreate
    update_schema = CronTaskUpdate

    def add_task(
        self,
        data: Union[Mapping[str, Any], CronTaskCreate, None] = None,
        **fields: Any,
    ) -> CronTask:
        payload = self._parse_payload(CronTaskCreate, data, fields)
        task = CronTask(
            **self._new_task_fields(),
            **self._payload_fields(payload),
            last_run_at=None,
            total_run_count=0,
        )
        return self._store_task(task)

    def update_task(
        self,
        task_id: str,
        data: Union[Mapping[str, Any], CronTaskUpdate, None] = None,
        **changes: Any,
    ) -> Optional[CronTask]:
        updated_task = super().update_task(task_id, data, **changes)
        if updated_task is not None and self.is_running:
            self._schedule_task(updated_task)
        return updated_task

    def next_run_at(self, task: CronTask, after: Optional[datetime] = None) -> datetime:
        """
        Next cron match strictly after the latest of now, the task's start
        and `after`.
        """
        base = max(self.now(), task.start_at)
        if after is not None:
            base = max(base, after)
        cron = croniter(task.cron_expression, base, second_at_beginning=True)
        return cron.get_next(datetime)

    def _schedule_task(self, task: CronTask, after: Optional[datetime] = None) -> None:
        if not self.can_schedule_task(task):
            return

        run_at = self.next_run_at(task, after)
        delay = max(0.0, ms_between(run_at, self.now()))
        handle = self.timer_factory.call_later(delay, lambda: self._execute_task(task.id, run_at))
        self._add_timer(task.id, handle)
        logger.debug("Task %s next runs at %s", task.id, run_at.isoformat())

    def _execute_task(self, task_id: str, run_at: datetime) -> None:
        self._discard_fired_timer(task_id)
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
            # the callback may have removed or rescheduled the task
            if self.get_task(task_id) is task:
                self._schedule_task(task, after=run_at)
