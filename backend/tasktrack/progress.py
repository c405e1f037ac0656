from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Optional

from .models import Task, TaskStatus
from .repository import TaskRepository
from .utils import round_half_up, utcnow

log = logging.getLogger(__name__)


class ProgressAggregator:
    """Rolls subtask completion up into the parent's progress percentage."""

    def __init__(self, tasks: TaskRepository, clock: Callable[[], dt.datetime] = utcnow) -> None:
        self._tasks = tasks
        self._clock = clock

    def update_task_progress(self, parent_id: int) -> Optional[Task]:
        parent = self._tasks.get(parent_id)
        if parent is None:
            return None
        subtasks = self._tasks.subtasks_of(parent_id)
        # leaf tasks keep their manually set progress
        if not subtasks:
            return parent
        completed = sum(1 for subtask in subtasks if subtask.status == TaskStatus.COMPLETED)
        progress = int(round_half_up(100 * completed / len(subtasks)))
        if progress != parent.progress:
            log.info("Task %s progress %s%% -> %s%%", parent_id, parent.progress, progress)
            parent.progress = progress
            parent.updated_at = self._clock()
            self._tasks.upsert(parent)
            self._tasks.commit()
        return parent
