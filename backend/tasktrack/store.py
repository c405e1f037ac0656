from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .billing import billable_amount
from .errors import InvalidTransitionError, NotFoundError, ValidationError
from .models import EntryApprovalStatus, Task, TimeEntry
from .repository import TaskRepository, TimeEntryRepository
from .utils import as_utc, elapsed_ms, ensure_utc, local_date, ms_to_hours, round2, utcnow

log = logging.getLogger(__name__)

Clock = Callable[[], dt.datetime]

EDITABLE_STATUSES = {EntryApprovalStatus.DRAFT, EntryApprovalStatus.REJECTED}
TIMING_FIELDS = ("duration", "start_time", "end_time")


def can_edit(entry: TimeEntry) -> bool:
    return entry.status in EDITABLE_STATUSES


def can_delete(entry: TimeEntry) -> bool:
    return entry.status in EDITABLE_STATUSES


def resolve_duration(
    duration: Optional[float],
    start_time: Optional[dt.datetime],
    end_time: Optional[dt.datetime],
    **context: Any,
) -> Tuple[float, Optional[dt.datetime], Optional[dt.datetime]]:
    """Validate the two input modes and return ``(hours, start, end)``.

    Exactly one mode is accepted: a positive ``duration`` in hours, or a
    ``start_time``/``end_time`` pair with the end after the start. Either
    way the hours must stay above zero once rounded to two decimals.
    """
    has_span = start_time is not None or end_time is not None
    if duration is not None and has_span:
        raise ValidationError("Provide either a duration or a start and end time, not both", **context)
    if duration is not None:
        hours = round2(duration)
        if hours <= 0:
            raise ValidationError("Duration must be at least 0.01 hours", duration=duration, **context)
        return hours, None, None
    if start_time is None or end_time is None:
        raise ValidationError("A duration or both start and end time are required", **context)
    start_utc = ensure_utc(start_time)
    end_utc = ensure_utc(end_time)
    if end_utc <= start_utc:
        raise ValidationError("End time must be after start time", **context)
    hours = ms_to_hours(elapsed_ms(start_utc, end_utc))
    if hours <= 0:
        raise ValidationError("Time span must be at least 0.01 hours", **context)
    return hours, start_utc, end_utc


class TimeEntryStore:
    """Completed time entries per task; a task's actual hours derive from them."""

    def __init__(self, tasks: TaskRepository, entries: TimeEntryRepository, clock: Clock = utcnow) -> None:
        self._tasks = tasks
        self._entries = entries
        self._clock = clock

    def get_task(self, task_id: int) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError("Task not found", task_id=task_id)
        return task

    def get_entry(self, task_id: int, entry_id: int) -> TimeEntry:
        task = self.get_task(task_id)
        entry = self._entries.get(entry_id)
        if entry is None or entry.task_id != task.id:
            raise NotFoundError("Time entry not found for task", task_id=task_id, entry_id=entry_id)
        return entry

    def entries_for(self, task_id: int) -> List[TimeEntry]:
        return list(self.get_task(task_id).time_entries)

    def create(
        self,
        task_id: int,
        *,
        duration: Optional[float] = None,
        start_time: Optional[dt.datetime] = None,
        end_time: Optional[dt.datetime] = None,
        description: str = "",
        billable: Optional[bool] = None,
        date: Optional[dt.date] = None,
    ) -> Task:
        task = self.get_task(task_id)
        hours, start_utc, end_utc = resolve_duration(duration, start_time, end_time, task_id=task_id)
        entry = self.append(
            task,
            duration=hours,
            description=description,
            entry_date=date or local_date(self._clock()),
            start_time=start_utc,
            end_time=end_utc,
            billable=billable,
        )
        self._entries.commit()
        log.info("Logged %.2fh on task %s (entry %s)", entry.duration, task.id, entry.id)
        return task

    def add_manual(self, task_id: int, hours: float, description: str = "") -> Task:
        return self.create(task_id, duration=hours, description=description)

    def append(
        self,
        task: Task,
        *,
        duration: float,
        description: str,
        entry_date: dt.date,
        start_time: Optional[dt.datetime] = None,
        end_time: Optional[dt.datetime] = None,
        billable: Optional[bool] = None,
    ) -> TimeEntry:
        """Attach a draft entry to ``task`` without input-mode validation.

        Billing uses the task's flag and rate as they are at the time of the
        write. Does not commit.
        """
        is_billable = task.billable if billable is None else billable
        rate = task.hourly_rate or 0.0
        now = self._clock()
        entry = TimeEntry(
            start_time=start_time,
            end_time=end_time,
            duration=max(duration, 0.0),
            description=description or "",
            date=entry_date,
            billable=bool(is_billable),
            hourly_rate=rate,
            total_amount=billable_amount(max(duration, 0.0), bool(is_billable), rate),
            status=EntryApprovalStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        task.time_entries.append(entry)
        task.updated_at = now
        self._entries.upsert(entry)
        return entry

    def update(self, task_id: int, entry_id: int, changes: Dict[str, Any]) -> TimeEntry:
        entry = self.get_entry(task_id, entry_id)
        if not can_edit(entry):
            raise InvalidTransitionError(
                "Only draft or rejected time entries can be edited",
                task_id=task_id,
                entry_id=entry_id,
                status=entry.status.value,
            )
        if any(changes.get(field) is not None for field in TIMING_FIELDS):
            start_time = changes.get("start_time")
            end_time = changes.get("end_time")
            if changes.get("duration") is None:
                # a single moved boundary keeps the other one
                start_time = start_time if start_time is not None else as_utc(entry.start_time)
                end_time = end_time if end_time is not None else as_utc(entry.end_time)
            hours, start_utc, end_utc = resolve_duration(
                changes.get("duration"),
                start_time,
                end_time,
                task_id=task_id,
                entry_id=entry_id,
            )
            entry.duration = hours
            entry.start_time = start_utc
            entry.end_time = end_utc
        if changes.get("description") is not None:
            entry.description = changes["description"]
        if changes.get("billable") is not None:
            entry.billable = bool(changes["billable"])
        if changes.get("date") is not None:
            entry.date = changes["date"]
        entry.total_amount = billable_amount(entry.duration, entry.billable, entry.hourly_rate)

        if entry.status == EntryApprovalStatus.REJECTED:
            entry.status = EntryApprovalStatus.DRAFT
            entry.rejection_reason = None
            entry.rejected_at = None
            entry.rejected_by = None
            entry.submitted_at = None
            log.info("Rejected entry %s edited, back to draft", entry.id)

        now = self._clock()
        entry.updated_at = now
        entry.task.updated_at = now
        self._entries.upsert(entry)
        self._entries.commit()
        return entry

    def delete(self, task_id: int, entry_id: int) -> Task:
        entry = self.get_entry(task_id, entry_id)
        if not can_delete(entry):
            raise InvalidTransitionError(
                "Only draft or rejected time entries can be deleted",
                task_id=task_id,
                entry_id=entry_id,
                status=entry.status.value,
            )
        task = entry.task
        task.time_entries.remove(entry)
        task.updated_at = self._clock()
        self._tasks.upsert(task)
        self._tasks.commit()
        log.info("Deleted entry %s from task %s", entry_id, task_id)
        return task
