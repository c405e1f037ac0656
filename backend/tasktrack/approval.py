from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from .errors import InvalidTransitionError, NotFoundError, TrackingError, ValidationError
from .models import EntryApprovalStatus, TimeEntry
from .repository import TimeEntryRepository
from .utils import utcnow

log = logging.getLogger(__name__)

Clock = Callable[[], dt.datetime]

Status = EntryApprovalStatus


@dataclass
class BulkOutcome:
    entry_id: int
    ok: bool
    entry: Optional[TimeEntry] = None
    error: Optional[TrackingError] = None


@dataclass
class ApprovalQueueEntry:
    entry: TimeEntry
    task_id: int
    task_title: str
    project_id: Optional[int]
    assignee: Optional[str]


class ApprovalWorkflow:
    """Moves time entries through draft, submitted, approved/rejected and invoiced.

    Bulk operations are best-effort: each id is processed on its own and a
    failure never rolls back the entries already transitioned.
    """

    def __init__(
        self,
        entries: TimeEntryRepository,
        *,
        clock: Clock = utcnow,
        default_approver: str = "Project Manager",
    ) -> None:
        self._entries = entries
        self._clock = clock
        self._default_approver = default_approver

    def get_entry(self, entry_id: int) -> TimeEntry:
        entry = self._entries.get(entry_id)
        if entry is None:
            raise NotFoundError("Time entry not found", entry_id=entry_id)
        return entry

    def submit(self, entry_id: int) -> TimeEntry:
        entry = self._transition(entry_id, Status.DRAFT, Status.SUBMITTED)
        entry.submitted_at = entry.updated_at
        return self._save(entry)

    def approve(self, entry_id: int, approver: Optional[str] = None) -> TimeEntry:
        entry = self._transition(entry_id, Status.SUBMITTED, Status.APPROVED)
        entry.approved_at = entry.updated_at
        entry.approved_by = approver or self._default_approver
        entry.rejection_reason = None
        return self._save(entry)

    def reject(self, entry_id: int, reason: Optional[str], rejector: Optional[str] = None) -> TimeEntry:
        reason = self._require_reason(reason, entry_id=entry_id)
        entry = self._transition(entry_id, Status.SUBMITTED, Status.REJECTED)
        entry.rejection_reason = reason
        entry.rejected_at = entry.updated_at
        entry.rejected_by = rejector or self._default_approver
        entry.approved_at = None
        entry.approved_by = None
        return self._save(entry)

    def mark_invoiced(self, entry_id: int) -> TimeEntry:
        entry = self._transition(entry_id, Status.APPROVED, Status.INVOICED)
        entry.invoiced_at = entry.updated_at
        return self._save(entry)

    def bulk_approve(self, entry_ids: Iterable[int], approver: Optional[str] = None) -> List[BulkOutcome]:
        return [self._attempt(entry_id, lambda eid: self.approve(eid, approver)) for entry_id in entry_ids]

    def bulk_reject(
        self,
        entry_ids: Iterable[int],
        reason: Optional[str],
        rejector: Optional[str] = None,
    ) -> List[BulkOutcome]:
        reason = self._require_reason(reason)
        return [self._attempt(entry_id, lambda eid: self.reject(eid, reason, rejector)) for entry_id in entry_ids]

    def approval_queue(self) -> List[ApprovalQueueEntry]:
        queue: List[ApprovalQueueEntry] = []
        for entry in self._entries.submitted_oldest_first():
            task = entry.task
            queue.append(
                ApprovalQueueEntry(
                    entry=entry,
                    task_id=task.id,
                    task_title=task.title,
                    project_id=task.project_id,
                    assignee=task.assignee,
                )
            )
        return queue

    def entries_by_status(self, status: EntryApprovalStatus) -> List[TimeEntry]:
        return self._entries.by_status(status)

    def _transition(self, entry_id: int, source: Status, target: Status) -> TimeEntry:
        entry = self.get_entry(entry_id)
        if entry.status != source:
            raise InvalidTransitionError(
                f"Only {source.value} entries can become {target.value}",
                entry_id=entry_id,
                task_id=entry.task_id,
                status=entry.status.value,
            )
        entry.status = target
        entry.updated_at = self._clock()
        log.info("Time entry %s: %s -> %s", entry_id, source.value, target.value)
        return entry

    def _save(self, entry: TimeEntry) -> TimeEntry:
        self._entries.upsert(entry)
        self._entries.commit()
        return entry

    def _attempt(self, entry_id: int, action: Callable[[int], TimeEntry]) -> BulkOutcome:
        try:
            return BulkOutcome(entry_id=entry_id, ok=True, entry=action(entry_id))
        except TrackingError as exc:
            log.warning("Bulk transition skipped entry %s: %s", entry_id, exc)
            return BulkOutcome(entry_id=entry_id, ok=False, error=exc)

    @staticmethod
    def _require_reason(reason: Optional[str], **context) -> str:
        if reason is None or not reason.strip():
            raise ValidationError("A rejection reason is required", **context)
        return reason.strip()
