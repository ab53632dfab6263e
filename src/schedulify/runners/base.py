from abc import ABC, abstractmethod
import asyncio
import inspect
import logging
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, ClassVar, Dict, Generic, Iterable, List, Mapping, Optional, Set, Type, TypeVar, Union

from pydantic import BaseModel

from schedulify.domain.task import Task, TaskCreate, TaskType, TaskUpdate, generate_task_id
from schedulify.timers.event_loop import AsyncioTimers, SystemClock
from schedulify.timers.protocol import Clock, TimerFactory, TimerHandle

logger = logging.getLogger(__name__)

TaskT = TypeVar("TaskT", bound=Task)
PayloadT = TypeVar("PayloadT", bound=BaseModel)


class RunnerConfig(BaseModel):
    start: bool = False


def ms_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() * 1000


class BaseRunner(ABC, Generic[TaskT]):
    """
    Owns a task store and the timers scheduled for it.

    The store maps task id to record in insertion order. The timer registry
    maps task id to the single active timer handle of that task; every id in
    it also exists in the store. Subclasses decide how a task is scheduled,
    this class decides whether it may be scheduled right now.
    """

    task_type: ClassVar[TaskType]
    create_schema: ClassVar[Type[TaskCreate]]
    update_schema: ClassVar[Type[TaskUpdate]]

    def __init__(
        self,
        tasks: Optional[Iterable[TaskT]] = None,
        config: Optional[RunnerConfig] = None,
        *,
        clock: Optional[Clock] = None,
        timers: Optional[TimerFactory] = None,
        id_factory: Callable[[], str] = generate_task_id,
    ):
        self.config: RunnerConfig = config or RunnerConfig()
        self.clock: Clock = clock or SystemClock()
        self.timer_factory: TimerFactory = timers or AsyncioTimers()
        self.id_factory: Callable[[], str] = id_factory
        self._tasks: Dict[str, TaskT] = {}
        self._timers: Dict[str, TimerHandle] = {}
        self._is_running: bool = False
        self._pending_callbacks: Set[asyncio.Future] = set()
        self._removing: Set[str] = set()

        for task in tasks or []:
            if task.id in self._tasks:
                raise ValueError(f"Duplicate task id: {task.id}")
            self._tasks[task.id] = task

        if self.config.start:
            self.start()

    @property
    def tasks(self) -> List[TaskT]:
        return list(self._tasks.values())

    @property
    def timers(self) -> Mapping[str, TimerHandle]:
        return MappingProxyType(self._timers)

    @property
    def is_running(self) -> bool:
        return self._is_running

    def now(self) -> datetime:
        return self.clock.now()

    def start(self) -> Callable[[], None]:
        """
        Mark the runner active and schedule every eligible task.

        Returns:
            Callable[[], None]: Stops every timer and empties the runner.
        """
        self._is_running = True
        logger.info("%s started with %d task(s)", type(self).__name__, len(self._tasks))
        for task in list(self._tasks.values()):
            self._schedule_task(task)
        return self.clear

    def clear(self) -> None:
        """
        Cancel every timer and drop every task. Removal observers are not called.
        """
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._tasks.clear()
        self._is_running = False
        logger.debug("%s cleared", type(self).__name__)

    def stop_all_tasks(self) -> None:
        self.clear()

    def get_task(self, task_id: str) -> Optional[TaskT]:
        return self._tasks.get(task_id)

    def get_tasks(self) -> List[TaskT]:
        return self.tasks

    def remove_task(self, task_id: str) -> None:
        """
        Cancel the task's timer, notify its removal observer, then drop it.
        Unknown ids are ignored, as are removals made from inside the observer.
        """
        if self._has_task_timer(task_id):
            self._remove_timer(task_id)

        task = self._tasks.get(task_id)
        if task is None or task_id in self._removing:
            return

        self._removing.add(task_id)
        try:
            if task.on_remove is not None:
                task.on_remove(task)
        finally:
            self._removing.discard(task_id)
            self._tasks.pop(task_id, None)
            logger.debug("Removed task %s", task_id)

    def update_task(
        self,
        task_id: str,
        data: Union[Mapping[str, Any], TaskUpdate, None] = None,
        **changes: Any,
    ) -> Optional[TaskT]:
        """
        Shallow-merge the given fields into the task and clear its timer.

        Args:
            task_id (str): Id of the task to update.
            data: Update payload or mapping of field names to new values.
            **changes: Additional field values, applied after `data`.

        Returns:
            Optional[TaskT]: The updated task, or None if no task has this id.

        Raises:
            pydantic.ValidationError: If a field is unknown or a value is invalid.
        """
        task = self._tasks.get(task_id)
        if task is None:
            return None

        update = self._parse_payload(self.update_schema, data, changes)
        merged = {name: getattr(task, name) for name in type(task).model_fields}
        merged.update({name: getattr(update, name) for name in update.model_fields_set})
        # raises before the record is touched
        validated = type(task).model_validate(merged)
        for field_name in update.model_fields_set:
            setattr(task, field_name, getattr(validated, field_name))

        self._remove_timer(task_id)
        return task

    def is_task_enabled(self, task: TaskT) -> bool:
        return task.is_enabled()

    def is_task_for_future(self, task: TaskT) -> bool:
        return task.start_at > self.now()

    def is_task_expired(self, task: TaskT) -> bool:
        if task.never_expires:
            return False
        return task.expire_at < self.now()

    def can_schedule_task(self, task: TaskT) -> bool:
        return (
            self.is_task_enabled(task)
            and not self.is_task_expired(task)
            and not self._has_task_timer(task.id)
        )

    @abstractmethod
    def add_task(self, data: Union[Mapping[str, Any], BaseModel, None] = None, **fields: Any) -> TaskT:
        pass

    @abstractmethod
    def _schedule_task(self, task: TaskT) -> None:
        pass

    def _store_task(self, task: TaskT) -> TaskT:
        self._tasks[task.id] = task
        if self._is_running:
            self._schedule_task(task)
        return task

    def _new_task_fields(self) -> Dict[str, Any]:
        return {"id": self.id_factory(), "created_at": self.now()}

    @staticmethod
    def _parse_payload(
        schema: Type[PayloadT],
        data: Union[Mapping[str, Any], BaseModel, None],
        fields: Mapping[str, Any],
    ) -> PayloadT:
        if isinstance(data, schema) and not fields:
            return data
        if isinstance(data, BaseModel):
            data = {name: getattr(data, name) for name in data.model_fields_set}
        return schema.model_validate({**(data or {}), **fields})

    @staticmethod
    def _payload_fields(payload: BaseModel) -> Dict[str, Any]:
        return {name: getattr(payload, name) for name in type(payload).model_fields}

    def _add_timer(self, task_id: str, handle: TimerHandle) -> None:
        self._timers[task_id] = handle

    def _has_task_timer(self, task_id: str) -> bool:
        return task_id in self._timers

    def _remove_timer(self, task_id: str) -> None:
        handle = self._timers.pop(task_id, None)
        if handle is not None:
            handle.cancel()

    def _discard_fired_timer(self, task_id: str) -> None:
        # one-shot handles have nothing left to cancel once they fired
        self._timers.pop(task_id, None)

    def _run_callback(self, task: TaskT) -> None:
        """
        Invoke the task callback. Awaitable results are scheduled on the
        running loop and not awaited; sync exceptions propagate to the caller.

        Raises:
            RuntimeError: If the callback returned an awaitable and no event
                loop is running to drive it.
        """
        result = task.callback()
        if inspect.isawaitable(result):
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                if inspect.iscoroutine(result):
                    result.close()
                raise RuntimeError(
                    f"Callback of task {task.id} returned an awaitable but no event loop is running"
                ) from None
            future = asyncio.ensure_future(result, loop=loop)
            self._pending_callbacks.add(future)
            future.add_done_callback(lambda f: self._handle_callback_completion(task.id, f))

    def _handle_callback_completion(self, task_id: str, future: asyncio.Future) -> None:
        self._pending_callbacks.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            future.get_loop().call_exception_handler({
                "message": f"Exception in callback of task {task_id}",
                "exception": exc,
                "future": future,
            })
