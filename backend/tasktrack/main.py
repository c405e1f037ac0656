from __future__ import annotations

from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, Response, status
from sqlalchemy.orm import Session

from . import models
from .approval import BulkOutcome
from .config import settings
from .database import engine, get_db
from .errors import register_exception_handlers
from .models import EntryApprovalStatus
from .schemas import (
    ApprovalQueueItemResponse,
    ApproveRequest,
    BulkApproveRequest,
    BulkOutcomeResponse,
    BulkRejectRequest,
    RejectRequest,
    SubtaskBulkUpdateRequest,
    SubtaskIdsRequest,
    TaskCreateRequest,
    TaskResponse,
    TaskUpdateRequest,
    TimeEntryCreateRequest,
    TimeEntryResponse,
    TimeEntryUpdateRequest,
    TimerStartRequest,
    TimerStopRequest,
)
from .services import TimeTracking
from .timers import TIMER_LOCK

models.Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.app_name)
app.state.timer_lock = TIMER_LOCK
register_exception_handlers(app)


def get_tracking(request: Request, db: Session = Depends(get_db)) -> TimeTracking:
    return TimeTracking(db, lock=request.app.state.timer_lock)


def _bulk_response(outcomes: List[BulkOutcome]) -> List[BulkOutcomeResponse]:
    return [
        BulkOutcomeResponse(
            entry_id=outcome.entry_id,
            ok=outcome.ok,
            entry=TimeEntryResponse.model_validate(outcome.entry) if outcome.entry is not None else None,
            error=outcome.error.to_dict() if outcome.error is not None else None,
        )
        for outcome in outcomes
    ]


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


# Tasks and subtasks


@app.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def task_create(payload: TaskCreateRequest, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.tasks.create_task(**payload.model_dump())


@app.get("/tasks", response_model=List[TaskResponse])
def task_list(top_level: bool = False, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.tasks.list_tasks(top_level_only=top_level)


@app.get("/tasks/{task_id}", response_model=TaskResponse)
def task_detail(task_id: int, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.tasks.get_task(task_id)


@app.patch("/tasks/{task_id}", response_model=TaskResponse)
def task_update(task_id: int, payload: TaskUpdateRequest, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.tasks.update_task(task_id, payload.model_dump(exclude_unset=True))


@app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def task_delete(task_id: int, tracking: TimeTracking = Depends(get_tracking)) -> Response:
    tracking.tasks.delete_task(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/tasks/{task_id}/subtasks", response_model=List[TaskResponse])
def subtask_list(task_id: int, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.tasks.subtasks(task_id)


@app.post("/tasks/{task_id}/subtasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def subtask_create(task_id: int, payload: TaskCreateRequest, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.tasks.create_subtask(task_id, **payload.model_dump())


@app.patch("/tasks/{task_id}/subtasks", response_model=List[TaskResponse])
def subtask_bulk_update(
    task_id: int,
    payload: SubtaskBulkUpdateRequest,
    tracking: TimeTracking = Depends(get_tracking),
):
    updates = [(item.id, item.changes.model_dump(exclude_unset=True)) for item in payload.updates]
    return tracking.tasks.bulk_update_subtasks(task_id, updates)


@app.put("/tasks/{task_id}/subtasks/order", response_model=List[TaskResponse])
def subtask_reorder(task_id: int, payload: SubtaskIdsRequest, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.tasks.reorder_subtasks(task_id, payload.subtask_ids)


@app.post("/tasks/{task_id}/subtasks/complete", response_model=List[TaskResponse])
def subtask_complete(task_id: int, payload: SubtaskIdsRequest, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.tasks.bulk_complete_subtasks(task_id, payload.subtask_ids)


@app.post("/tasks/{task_id}/detach", response_model=TaskResponse)
def subtask_detach(task_id: int, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.tasks.convert_to_main_task(task_id)


@app.post("/tasks/{task_id}/progress", response_model=Optional[TaskResponse])
def task_progress(task_id: int, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.progress.update_task_progress(task_id)


# Timer


@app.get("/timer/active", response_model=Optional[TaskResponse])
def timer_active(tracking: TimeTracking = Depends(get_tracking)):
    return tracking.timers.active_task()


@app.post("/tasks/{task_id}/timer/start", response_model=TaskResponse)
def timer_start(task_id: int, payload: TimerStartRequest, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.timers.start(task_id, payload.description)


@app.post("/tasks/{task_id}/timer/pause", response_model=TaskResponse)
def timer_pause(task_id: int, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.timers.pause(task_id)


@app.post("/tasks/{task_id}/timer/resume", response_model=TaskResponse)
def timer_resume(task_id: int, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.timers.resume(task_id)


@app.post("/tasks/{task_id}/timer/stop", response_model=TaskResponse)
def timer_stop(task_id: int, payload: TimerStopRequest, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.timers.stop(task_id, payload.description)


# Time entries


@app.get("/tasks/{task_id}/time-entries", response_model=List[TimeEntryResponse])
def entry_list(task_id: int, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.store.entries_for(task_id)


@app.post("/tasks/{task_id}/time-entries", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def entry_create(task_id: int, payload: TimeEntryCreateRequest, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.store.create(task_id, **payload.model_dump())


@app.patch("/tasks/{task_id}/time-entries/{entry_id}", response_model=TimeEntryResponse)
def entry_update(
    task_id: int,
    entry_id: int,
    payload: TimeEntryUpdateRequest,
    tracking: TimeTracking = Depends(get_tracking),
):
    return tracking.store.update(task_id, entry_id, payload.model_dump(exclude_unset=True))


@app.delete("/tasks/{task_id}/time-entries/{entry_id}", response_model=TaskResponse)
def entry_delete(task_id: int, entry_id: int, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.store.delete(task_id, entry_id)


@app.get("/time-entries", response_model=List[TimeEntryResponse])
def entry_by_status(
    entry_status: EntryApprovalStatus = Query(alias="status"),
    tracking: TimeTracking = Depends(get_tracking),
):
    return tracking.approval.entries_by_status(entry_status)


# Approval workflow


@app.post("/time-entries/bulk-approve", response_model=List[BulkOutcomeResponse])
def entry_bulk_approve(payload: BulkApproveRequest, tracking: TimeTracking = Depends(get_tracking)):
    return _bulk_response(tracking.approval.bulk_approve(payload.entry_ids, payload.approver))


@app.post("/time-entries/bulk-reject", response_model=List[BulkOutcomeResponse])
def entry_bulk_reject(payload: BulkRejectRequest, tracking: TimeTracking = Depends(get_tracking)):
    return _bulk_response(tracking.approval.bulk_reject(payload.entry_ids, payload.reason, payload.rejector))


@app.post("/time-entries/{entry_id}/submit", response_model=TimeEntryResponse)
def entry_submit(entry_id: int, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.approval.submit(entry_id)


@app.post("/time-entries/{entry_id}/approve", response_model=TimeEntryResponse)
def entry_approve(entry_id: int, payload: ApproveRequest, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.approval.approve(entry_id, payload.approver)


@app.post("/time-entries/{entry_id}/reject", response_model=TimeEntryResponse)
def entry_reject(entry_id: int, payload: RejectRequest, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.approval.reject(entry_id, payload.reason, payload.rejector)


@app.post("/time-entries/{entry_id}/invoice", response_model=TimeEntryResponse)
def entry_invoice(entry_id: int, tracking: TimeTracking = Depends(get_tracking)):
    return tracking.approval.mark_invoiced(entry_id)


@app.get("/approvals/queue", response_model=List[ApprovalQueueItemResponse])
def approval_queue(tracking: TimeTracking = Depends(get_tracking)):
    return tracking.approval.approval_queue()
