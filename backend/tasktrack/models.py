from __future__ import annotations

import datetime as dt
import enum

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship

from .utils import as_utc, elapsed_ms, round2, utcnow

Base = declarative_base()

# Every timer row carries the same slot value; the unique constraint keeps the
# table at one row, which is the single-active-timer invariant.
ACTIVE_TIMER_SLOT = 1


class TaskStatus(str, enum.Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EntryApprovalStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    INVOICED = "invoiced"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    project_id = Column(Integer, nullable=True, index=True)
    client_id = Column(Integer, nullable=True)
    assignee = Column(String(100), nullable=True)
    status = Column(
        Enum(TaskStatus, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=TaskStatus.TODO,
        index=True,
    )
    parent_task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True, index=True)
    position = Column(Integer, nullable=False, default=0)
    progress = Column(Integer, nullable=False, default=0)
    estimated_hours = Column(Float, nullable=False, default=0.0)
    billable = Column(Boolean, nullable=False, default=False)
    hourly_rate = Column(Float, nullable=False, default=0.0)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    time_entries = relationship(
        "TimeEntry",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TimeEntry.id",
    )
    active_timer = relationship(
        "Timer",
        back_populates="task",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def actual_hours(self) -> float:
        return round2(sum(entry.duration or 0.0 for entry in self.time_entries))

    @property
    def is_subtask(self) -> bool:
        return self.parent_task_id is not None


class Timer(Base):
    __tablename__ = "timers"

    id = Column(Integer, primary_key=True)
    slot = Column(Integer, nullable=False, unique=True, default=ACTIVE_TIMER_SLOT)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, unique=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    description = Column(Text, nullable=True)
    is_paused = Column(Boolean, nullable=False, default=False)
    pause_start_time = Column(DateTime(timezone=True), nullable=True)
    paused_duration_ms = Column(Integer, nullable=False, default=0)

    task = relationship("Task", back_populates="active_timer")

    def mark_paused(self, now: dt.datetime) -> None:
        self.is_paused = True
        self.pause_start_time = as_utc(now)

    def mark_resumed(self, now: dt.datetime) -> None:
        self.paused_duration_ms = (self.paused_duration_ms or 0) + self._open_pause_ms(now)
        self.pause_start_time = None
        self.is_paused = False

    def fold_open_pause(self, now: dt.datetime) -> None:
        if self.is_paused:
            self.mark_resumed(now)

    def working_ms(self, now: dt.datetime) -> int:
        """Milliseconds worked so far, excluding every paused interval."""
        paused = (self.paused_duration_ms or 0) + self._open_pause_ms(now)
        return elapsed_ms(self.start_time, now) - paused

    def _open_pause_ms(self, now: dt.datetime) -> int:
        if not self.is_paused or self.pause_start_time is None:
            return 0
        return max(elapsed_ms(self.pause_start_time, now), 0)


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    duration = Column(Float, nullable=False, default=0.0)
    description = Column(Text, nullable=False, default="")
    date = Column(Date, nullable=False, index=True)
    billable = Column(Boolean, nullable=False, default=False)
    hourly_rate = Column(Float, nullable=False, default=0.0)
    total_amount = Column(Float, nullable=False, default=0.0)
    status = Column(
        Enum(EntryApprovalStatus, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=EntryApprovalStatus.DRAFT,
        index=True,
    )
    rejection_reason = Column(Text, nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by = Column(String(100), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(String(100), nullable=True)
    invoiced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    task = relationship("Task", back_populates="time_entries")
