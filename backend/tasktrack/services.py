from __future__ import annotations

import datetime as dt
from threading import RLock
from typing import Callable, Optional

from sqlalchemy.orm import Session

from .approval import ApprovalWorkflow
from .config import Settings, settings as default_settings
from .progress import ProgressAggregator
from .repository import TaskRepository, TimeEntryRepository, TimerRepository
from .store import TimeEntryStore
from .tasks import TaskService
from .timers import TimerRegistry
from .utils import utcnow


class TimeTracking:
    """Wires the repositories and engine components for one database session."""

    def __init__(
        self,
        db: Session,
        *,
        clock: Callable[[], dt.datetime] = utcnow,
        lock: Optional[RLock] = None,
        settings: Settings = default_settings,
    ) -> None:
        self.db = db
        self.task_repo = TaskRepository(db)
        self.entry_repo = TimeEntryRepository(db)
        self.timer_repo = TimerRepository(db)

        self.store = TimeEntryStore(self.task_repo, self.entry_repo, clock)
        self.timers = TimerRegistry(
            self.task_repo,
            self.timer_repo,
            self.store,
            clock=clock,
            lock=lock,
            default_description=settings.default_timer_description,
        )
        self.approval = ApprovalWorkflow(
            self.entry_repo,
            clock=clock,
            default_approver=settings.default_approver,
        )
        self.progress = ProgressAggregator(self.task_repo, clock)
        self.tasks = TaskService(self.task_repo, self.progress, clock)
