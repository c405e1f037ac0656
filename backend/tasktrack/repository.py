from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from .models import EntryApprovalStatus, Task, TimeEntry, Timer

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """Storage contract the tracking engine depends on."""

    @abstractmethod
    def get(self, entity_id: int) -> Optional[T]: ...

    @abstractmethod
    def list(self) -> List[T]: ...

    @abstractmethod
    def upsert(self, entity: T) -> T: ...

    @abstractmethod
    def delete(self, entity: T) -> None: ...

    @abstractmethod
    def commit(self) -> None: ...


class SqlRepository(Repository[T]):
    model: Type[T]

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, entity_id: int) -> Optional[T]:
        return self.db.get(self.model, entity_id)

    def list(self) -> List[T]:
        return self.db.query(self.model).order_by(self.model.id.asc()).all()

    def upsert(self, entity: T) -> T:
        self.db.add(entity)
        self.db.flush()
        return entity

    def delete(self, entity: T) -> None:
        self.db.delete(entity)
        self.db.flush()

    def commit(self) -> None:
        self.db.commit()


class TaskRepository(SqlRepository[Task]):
    model = Task

    def subtasks_of(self, parent_id: int) -> List[Task]:
        return (
            self.db.query(Task)
            .filter(Task.parent_task_id == parent_id)
            .order_by(Task.position.asc(), Task.id.asc())
            .all()
        )

    def top_level(self) -> List[Task]:
        return (
            self.db.query(Task)
            .filter(Task.parent_task_id.is_(None))
            .order_by(Task.id.asc())
            .all()
        )


class TimeEntryRepository(SqlRepository[TimeEntry]):
    model = TimeEntry

    def by_status(self, status: EntryApprovalStatus) -> List[TimeEntry]:
        return (
            self.db.query(TimeEntry)
            .filter(TimeEntry.status == status)
            .order_by(TimeEntry.updated_at.desc(), TimeEntry.id.desc())
            .all()
        )

    def submitted_oldest_first(self) -> List[TimeEntry]:
        return (
            self.db.query(TimeEntry)
            .filter(TimeEntry.status == EntryApprovalStatus.SUBMITTED)
            .order_by(TimeEntry.submitted_at.asc(), TimeEntry.id.asc())
            .all()
        )


class TimerRepository(SqlRepository[Timer]):
    model = Timer

    def active(self) -> Optional[Timer]:
        return self.db.query(Timer).order_by(Timer.id.desc()).first()

    def delete(self, entity: Timer) -> None:
        # Detach through the owning task so the in-memory Task.active_timer
        # never points at a deleted row.
        task = entity.task
        if task is not None:
            task.active_timer = None
        else:
            self.db.delete(entity)
        self.db.flush()
