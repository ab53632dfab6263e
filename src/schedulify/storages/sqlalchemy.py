from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Column, String, DateTime, Boolean, Float, Integer
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.future import select

from schedulify.domain.task import TaskType
from schedulify.runners.base import BaseRunner
from schedulify.storages.protocol import TaskStorage
from schedulify.storages.snapshot import TaskSnapshot

Base = declarative_base()


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.astimezone(timezone.utc)


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops the offset, everything is written as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TaskModel(Base):
    __tablename__ = 'tasks'

    id = Column(String, primary_key=True)
    type = Column(String, nullable=False, index=True)
    name = Column(String)
    created_at = Column(DateTime(timezone=True), nullable=False)
    start_at = Column(DateTime(timezone=True), nullable=False)
    expire_at = Column(DateTime(timezone=True))
    enabled = Column(Boolean)
    interval = Column(Float)
    cron_expression = Column(String)
    last_run_at = Column(DateTime(timezone=True))
    total_run_count = Column(Integer)


class SqlAlchemyTaskStorage(TaskStorage):
    def __init__(self, db_url: str):
        self.engine = create_async_engine(db_url)
        self.async_session = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        await self.engine.dispose()

    async def save_task(self, snapshot: TaskSnapshot) -> str:
        async with self.async_session() as session:
            await session.merge(self._snapshot_to_db(snapshot))
            await session.commit()
            return snapshot.id

    async def get_task(self, task_id: str) -> Optional[TaskSnapshot]:
        async with self.async_session() as session:
            result = await session.execute(select(TaskModel).filter_by(id=task_id))
            db_task = result.scalar_one_or_none()
            if db_task:
                return self._db_to_snapshot(db_task)
            return None

    async def delete_task(self, task_id: str) -> bool:
        async with self.async_session() as session:
            result = await session.execute(select(TaskModel).filter_by(id=task_id))
            db_task = result.scalar_one_or_none()
            if db_task:
                await session.delete(db_task)
                await session.commit()
                return True
            return False

    async def list_tasks(self, limit: int = 100, offset: int = 0, task_type: Optional[TaskType] = None) -> List[TaskSnapshot]:
        async with self.async_session() as session:
            query = select(TaskModel)
            if task_type is not None:
                query = query.filter_by(type=task_type.value)
            query = query.order_by(TaskModel.created_at.asc(), TaskModel.id.asc()).offset(offset).limit(limit)
            result = await session.execute(query)
            return [self._db_to_snapshot(db_task) for db_task in result.scalars()]

    async def sync(self, runner: BaseRunner) -> int:
        snapshots = [TaskSnapshot.from_task(task) for task in runner.get_tasks()]
        live_ids = {snapshot.id for snapshot in snapshots}
        async with self.async_session() as session:
            result = await session.execute(select(TaskModel).filter_by(type=runner.task_type.value))
            for db_task in result.scalars():
                if db_task.id not in live_ids:
                    await session.delete(db_task)
            for snapshot in snapshots:
                await session.merge(self._snapshot_to_db(snapshot))
            await session.commit()
        return len(snapshots)

    def _snapshot_to_db(self, snapshot: TaskSnapshot) -> TaskModel:
        return TaskModel(
            id=snapshot.id,
            type=snapshot.type.value,
            name=snapshot.name,
            created_at=_to_utc(snapshot.created_at),
            start_at=_to_utc(snapshot.start_at),
            expire_at=_to_utc(snapshot.expire_at),
            enabled=snapshot.enabled,
            interval=snapshot.interval,
            cron_expression=snapshot.cron_expression,
            last_run_at=_to_utc(snapshot.last_run_at),
            total_run_count=snapshot.total_run_count
        )

    def _db_to_snapshot(self, db_task: TaskModel) -> TaskSnapshot:
        return TaskSnapshot(
            id=db_task.id,
            type=TaskType(db_task.type),
            name=db_task.name,
            created_at=_from_db(db_task.created_at),
            start_at=_from_db(db_task.start_at),
            expire_at=_from_db(db_task.expire_at),
            enabled=db_task.enabled,
            interval=db_task.interval,
            cron_expression=db_task.cron_expression,
            last_run_at=_from_db(db_task.last_run_at),
            total_run_count=db_task.total_run_count
        )


class InMemoryTaskStorage(SqlAlchemyTaskStorage):
    def __init__(self):
        super().__init__("sqlite+aiosqlite:///:memory:")
