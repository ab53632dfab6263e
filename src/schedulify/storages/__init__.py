from .snapshot import TaskSnapshot
from .protocol import TaskStorage
from .sqlalchemy import SqlAlchemyTaskStorage, InMemoryTaskStorage

__all__ = ["TaskSnapshot", "TaskStorage", "SqlAlchemyTaskStorage", "InMemoryTaskStorage"]
