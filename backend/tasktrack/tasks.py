from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import InvalidTransitionError, NotFoundError, ValidationError
from .models import Task, TaskStatus
from .progress import ProgressAggregator
from .repository import TaskRepository
from .store import can_delete
from .utils import utcnow

log = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "title",
    "description",
    "project_id",
    "client_id",
    "assignee",
    "status",
    "estimated_hours",
    "billable",
    "hourly_rate",
    "progress",
)
# Columns that may be cleared with an explicit None.
NULLABLE_FIELDS = ("description", "project_id", "client_id", "assignee")


def _editable(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value
        for key, value in fields.items()
        if key in EDITABLE_FIELDS and (value is not None or key in NULLABLE_FIELDS)
    }


def _validate_fields(fields: Dict[str, Any], **context: Any) -> None:
    if "title" in fields and not (fields["title"] or "").strip():
        raise ValidationError("Task title is required", **context)
    for name in ("estimated_hours", "hourly_rate"):
        value = fields.get(name)
        if value is not None and value < 0:
            raise ValidationError(f"{name} must not be negative", **context, **{name: value})
    progress = fields.get("progress")
    if progress is not None and not 0 <= progress <= 100:
        raise ValidationError("progress must be between 0 and 100", progress=progress, **context)


class TaskService:
    """Task lookup and subtask maintenance.

    Every subtask change re-runs the progress rollup of the affected parent.
    """

    def __init__(
        self,
        tasks: TaskRepository,
        progress: ProgressAggregator,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self._tasks = tasks
        self._progress = progress
        self._clock = clock

    def get_task(self, task_id: int) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError("Task not found", task_id=task_id)
        return task

    def list_tasks(self, top_level_only: bool = False) -> List[Task]:
        if top_level_only:
            return self._tasks.top_level()
        return self._tasks.list()

    def create_task(self, title: str, parent_task_id: Optional[int] = None, **fields: Any) -> Task:
        fields = _editable(fields)
        fields["title"] = title
        _validate_fields(fields)
        if "status" in fields:
            fields["status"] = TaskStatus(fields["status"])
        position = 0
        if parent_task_id is not None:
            self.get_task(parent_task_id)
            position = len(self._tasks.subtasks_of(parent_task_id))
        now = self._clock()
        task = Task(parent_task_id=parent_task_id, position=position, created_at=now, updated_at=now, **fields)
        if task.status == TaskStatus.COMPLETED:
            task.completed_at = now
        self._tasks.upsert(task)
        self._tasks.commit()
        log.info("Created task %s (%s)", task.id, task.title)
        if parent_task_id is not None:
            self._progress.update_task_progress(parent_task_id)
        return task

    def update_task(self, task_id: int, changes: Dict[str, Any]) -> Task:
        task = self._apply_changes(self.get_task(task_id), changes)
        self._tasks.commit()
        if task.parent_task_id is not None:
            self._progress.update_task_progress(task.parent_task_id)
        return task

    def delete_task(self, task_id: int) -> None:
        task = self.get_task(task_id)
        locked = [entry for entry in task.time_entries if not can_delete(entry)]
        if locked:
            raise InvalidTransitionError(
                "Tasks with time entries past draft or rejected cannot be deleted",
                task_id=task_id,
                entry_id=locked[0].id,
                status=locked[0].status.value,
            )
        parent_id = task.parent_task_id
        for subtask in self._tasks.subtasks_of(task_id):
            subtask.parent_task_id = None
        self._tasks.delete(task)
        self._tasks.commit()
        log.info("Deleted task %s", task_id)
        if parent_id is not None:
            self._progress.update_task_progress(parent_id)

    def subtasks(self, parent_id: int) -> List[Task]:
        self.get_task(parent_id)
        return self._tasks.subtasks_of(parent_id)

    def create_subtask(self, parent_id: int, title: str, **fields: Any) -> Task:
        return self.create_task(title, parent_task_id=parent_id, **fields)

    def update_subtask(self, subtask_id: int, changes: Dict[str, Any]) -> Task:
        return self.update_task(subtask_id, changes)

    def delete_subtask(self, subtask_id: int) -> None:
        self.delete_task(subtask_id)

    def convert_to_main_task(self, subtask_id: int) -> Task:
        task = self.get_task(subtask_id)
        parent_id = task.parent_task_id
        task.parent_task_id = None
        task.position = 0
        task.updated_at = self._clock()
        self._tasks.upsert(task)
        self._tasks.commit()
        if parent_id is not None:
            self._progress.update_task_progress(parent_id)
        return task

    def reorder_subtasks(self, parent_id: int, subtask_ids: Iterable[int]) -> List[Task]:
        """Move the listed subtasks to the front in the given order.

        Subtasks left out keep their relative order after the listed ones, so
        sibling positions stay unique.
        """
        siblings = self.subtasks(parent_id)
        children = {subtask.id: subtask for subtask in siblings}
        subtask_ids = list(subtask_ids)
        seen = set()
        for subtask_id in subtask_ids:
            if subtask_id not in children:
                raise ValidationError("Task is not a subtask of this parent", task_id=parent_id, subtask_id=subtask_id)
            if subtask_id in seen:
                raise ValidationError("Subtask listed more than once", task_id=parent_id, subtask_id=subtask_id)
            seen.add(subtask_id)
        ordered = [children[subtask_id] for subtask_id in subtask_ids]
        ordered.extend(subtask for subtask in siblings if subtask.id not in seen)
        now = self._clock()
        for position, subtask in enumerate(ordered):
            if subtask.position != position:
                subtask.position = position
                subtask.updated_at = now
        self._tasks.commit()
        self._progress.update_task_progress(parent_id)
        return self._tasks.subtasks_of(parent_id)

    def bulk_update_subtasks(
        self,
        parent_id: int,
        updates: Iterable[Tuple[int, Dict[str, Any]]],
    ) -> List[Task]:
        """Apply per-subtask changes, then roll progress up once.

        Every change set is validated before any subtask is touched. Ids that
        are not children of ``parent_id`` are skipped.
        """
        children = {subtask.id: subtask for subtask in self.subtasks(parent_id)}
        pending = [(children[subtask_id], changes) for subtask_id, changes in updates if subtask_id in children]
        for subtask, changes in pending:
            self._check_changes(subtask, _editable(changes))
        for subtask, changes in pending:
            self._apply_changes(subtask, changes)
        self._tasks.commit()
        log.info("Updated %s subtasks of task %s", len(pending), parent_id)
        self._progress.update_task_progress(parent_id)
        return self._tasks.subtasks_of(parent_id)

    def bulk_complete_subtasks(self, parent_id: int, subtask_ids: Iterable[int]) -> List[Task]:
        children = {subtask.id: subtask for subtask in self.subtasks(parent_id)}
        now = self._clock()
        for subtask_id in subtask_ids:
            subtask = children.get(subtask_id)
            if subtask is None:
                continue
            self._apply_status(subtask, TaskStatus.COMPLETED)
            subtask.updated_at = now
        self._tasks.commit()
        self._progress.update_task_progress(parent_id)
        return self._tasks.subtasks_of(parent_id)

    def _check_changes(self, task: Task, changes: Dict[str, Any]) -> None:
        _validate_fields(changes, task_id=task.id)
        if "progress" in changes and self._tasks.subtasks_of(task.id):
            raise ValidationError("Progress of a task with subtasks is derived from them", task_id=task.id)

    def _apply_changes(self, task: Task, changes: Dict[str, Any]) -> Task:
        """Validate and stage ``changes`` on ``task``; the caller commits."""
        changes = _editable(changes)
        self._check_changes(task, changes)
        status = changes.pop("status", None)
        for key, value in changes.items():
            setattr(task, key, value)
        if status is not None:
            self._apply_status(task, TaskStatus(status))
        task.updated_at = self._clock()
        self._tasks.upsert(task)
        return task

    def _apply_status(self, task: Task, status: TaskStatus) -> None:
        if status == TaskStatus.COMPLETED and task.completed_at is None:
            task.completed_at = self._clock()
        task.status = status
