from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer

from .models import EntryApprovalStatus, TaskStatus


def _serialize_datetime(value: Optional[dt.datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    else:
        value = value.astimezone(dt.timezone.utc)
    return value.isoformat()


class TimerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    task_id: int
    start_time: dt.datetime
    description: Optional[str]
    is_paused: bool
    pause_start_time: Optional[dt.datetime]
    paused_duration_ms: int

    @model_serializer(mode="plain", when_used="json")
    def _serialize(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "start_time": _serialize_datetime(self.start_time),
            "description": self.description,
            "is_paused": self.is_paused,
            "pause_start_time": _serialize_datetime(self.pause_start_time),
            "paused_duration_ms": self.paused_duration_ms,
        }


class TimeEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    task_id: int
    start_time: Optional[dt.datetime]
    end_time: Optional[dt.datetime]
    duration: float
    description: str
    date: dt.date
    billable: bool
    hourly_rate: float
    total_amount: float
    status: EntryApprovalStatus
    rejection_reason: Optional[str]
    submitted_at: Optional[dt.datetime]
    approved_at: Optional[dt.datetime]
    approved_by: Optional[str]
    rejected_at: Optional[dt.datetime]
    rejected_by: Optional[str]
    invoiced_at: Optional[dt.datetime]

    @model_serializer(mode="plain", when_used="json")
    def _serialize(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "start_time": _serialize_datetime(self.start_time),
            "end_time": _serialize_datetime(self.end_time),
            "duration": self.duration,
            "description": self.description,
            "date": self.date.isoformat(),
            "billable": self.billable,
            "hourly_rate": self.hourly_rate,
            "total_amount": self.total_amount,
            "status": self.status.value,
            "rejection_reason": self.rejection_reason,
            "submitted_at": _serialize_datetime(self.submitted_at),
            "approved_at": _serialize_datetime(self.approved_at),
            "approved_by": self.approved_by,
            "rejected_at": _serialize_datetime(self.rejected_at),
            "rejected_by": self.rejected_by,
            "invoiced_at": _serialize_datetime(self.invoiced_at),
        }


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    title: str
    description: Optional[str]
    project_id: Optional[int]
    client_id: Optional[int]
    assignee: Optional[str]
    status: TaskStatus
    parent_task_id: Optional[int]
    position: int
    progress: int
    estimated_hours: float
    actual_hours: float
    billable: bool
    hourly_rate: float
    completed_at: Optional[dt.datetime]
    active_timer: Optional[TimerResponse]
    time_entries: List[TimeEntryResponse] = Field(default_factory=list)

    @model_serializer(mode="plain", when_used="json")
    def _serialize(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "project_id": self.project_id,
            "client_id": self.client_id,
            "assignee": self.assignee,
            "status": self.status.value,
            "parent_task_id": self.parent_task_id,
            "position": self.position,
            "progress": self.progress,
            "estimated_hours": self.estimated_hours,
            "actual_hours": self.actual_hours,
            "billable": self.billable,
            "hourly_rate": self.hourly_rate,
            "completed_at": _serialize_datetime(self.completed_at),
            "active_timer": self.active_timer._serialize() if self.active_timer else None,
            "time_entries": [entry._serialize() for entry in self.time_entries],
        }


class TaskCreateRequest(BaseModel):
    title: str
    description: Optional[str] = None
    project_id: Optional[int] = None
    client_id: Optional[int] = None
    assignee: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    estimated_hours: float = Field(default=0.0, ge=0)
    billable: bool = False
    hourly_rate: float = Field(default=0.0, ge=0)
    progress: int = Field(default=0, ge=0, le=100)


class TaskUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    project_id: Optional[int] = None
    client_id: Optional[int] = None
    assignee: Optional[str] = None
    status: Optional[TaskStatus] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    billable: Optional[bool] = None
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    progress: Optional[int] = Field(default=None, ge=0, le=100)


class SubtaskIdsRequest(BaseModel):
    subtask_ids: List[int]


class SubtaskUpdate(BaseModel):
    id: int
    changes: TaskUpdateRequest


class SubtaskBulkUpdateRequest(BaseModel):
    updates: List[SubtaskUpdate]


class TimerStartRequest(BaseModel):
    description: Optional[str] = None


class TimerStopRequest(BaseModel):
    description: Optional[str] = None


class TimeEntryCreateRequest(BaseModel):
    duration: Optional[float] = None
    start_time: Optional[dt.datetime] = None
    end_time: Optional[dt.datetime] = None
    description: str = ""
    billable: Optional[bool] = None
    date: Optional[dt.date] = None


class TimeEntryUpdateRequest(BaseModel):
    duration: Optional[float] = None
    start_time: Optional[dt.datetime] = None
    end_time: Optional[dt.datetime] = None
    description: Optional[str] = None
    billable: Optional[bool] = None
    date: Optional[dt.date] = None


class ApproveRequest(BaseModel):
    approver: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None
    rejector: Optional[str] = None


class BulkApproveRequest(BaseModel):
    entry_ids: List[int]
    approver: Optional[str] = None


class BulkRejectRequest(BaseModel):
    entry_ids: List[int]
    reason: Optional[str] = None
    rejector: Optional[str] = None


class BulkOutcomeResponse(BaseModel):
    entry_id: int
    ok: bool
    entry: Optional[TimeEntryResponse] = None
    error: Optional[Dict[str, Any]] = None


class ApprovalQueueItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    entry: TimeEntryResponse
    task_id: int
    task_title: str
    project_id: Optional[int]
    assignee: Optional[str]
