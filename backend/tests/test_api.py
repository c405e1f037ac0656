from __future__ import annotations

from fastapi.testclient import TestClient


def _create_task(client: TestClient, **fields) -> dict:
    payload = {"title": "Authentication", "billable": True, "hourly_rate": 95}
    payload.update(fields)
    response = client.post("/tasks", json=payload)
    assert response.status_code == 201
    return response.json()


def _log_hours(client: TestClient, task_id: int, hours: float, description: str = "Implementation") -> dict:
    response = client.post(f"/tasks/{task_id}/time-entries", json={"duration": hours, "description": description})
    assert response.status_code == 201
    return response.json()["time_entries"][-1]


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_task_create_and_fetch(client):
    task = _create_task(client, assignee="Alex Rodriguez")
    assert task["status"] == "todo"
    assert task["actual_hours"] == 0
    assert task["active_timer"] is None

    response = client.get(f"/tasks/{task['id']}")
    assert response.status_code == 200
    assert response.json()["assignee"] == "Alex Rodriguez"


def test_unknown_task_is_404_with_context(client):
    response = client.get("/tasks/4242")
    assert response.status_code == 404
    body = response.json()
    assert body["task_id"] == 4242
    assert "detail" in body


def test_timer_flow(client, clock):
    task = _create_task(client, hourly_rate=50)

    started = client.post(f"/tasks/{task['id']}/timer/start", json={"description": "design work"})
    assert started.status_code == 200
    assert started.json()["active_timer"]["description"] == "design work"

    active = client.get("/timer/active")
    assert active.json()["id"] == task["id"]

    clock.advance(minutes=30)
    paused = client.post(f"/tasks/{task['id']}/timer/pause")
    assert paused.json()["active_timer"]["is_paused"] is True

    clock.advance(minutes=15)
    resumed = client.post(f"/tasks/{task['id']}/timer/resume")
    assert resumed.json()["active_timer"]["paused_duration_ms"] == 15 * 60 * 1000

    clock.advance(minutes=30)
    stopped = client.post(f"/tasks/{task['id']}/timer/stop", json={})
    assert stopped.status_code == 200
    body = stopped.json()
    assert body["active_timer"] is None
    assert body["actual_hours"] == 1.0
    entry = body["time_entries"][-1]
    assert entry["status"] == "draft"
    assert entry["description"] == "design work"
    assert entry["total_amount"] == 50.0

    assert client.get("/timer/active").json() is None


def test_pause_without_timer_is_409(client):
    task = _create_task(client)
    response = client.post(f"/tasks/{task['id']}/timer/pause")
    assert response.status_code == 409
    assert response.json()["task_id"] == task["id"]


def test_time_entry_with_both_modes_is_422(client):
    task = _create_task(client)
    response = client.post(
        f"/tasks/{task['id']}/time-entries",
        json={"duration": 1, "start_time": "2024-01-15T09:00:00Z", "end_time": "2024-01-15T10:00:00Z"},
    )
    assert response.status_code == 422
    assert client.get(f"/tasks/{task['id']}/time-entries").json() == []


def test_time_entry_from_interval(client):
    task = _create_task(client)
    response = client.post(
        f"/tasks/{task['id']}/time-entries",
        json={"start_time": "2024-01-15T13:00:00Z", "end_time": "2024-01-15T17:00:00Z", "date": "2024-01-15"},
    )
    assert response.status_code == 201
    entry = response.json()["time_entries"][-1]
    assert entry["duration"] == 4.0
    assert entry["total_amount"] == 380.0
    assert entry["start_time"] == "2024-01-15T13:00:00+00:00"


def test_edit_and_delete_time_entry(client):
    task = _create_task(client)
    entry = _log_hours(client, task["id"], 1)

    edited = client.patch(f"/tasks/{task['id']}/time-entries/{entry['id']}", json={"duration": 2})
    assert edited.status_code == 200
    assert edited.json()["total_amount"] == 190.0

    deleted = client.delete(f"/tasks/{task['id']}/time-entries/{entry['id']}")
    assert deleted.status_code == 200
    assert deleted.json()["time_entries"] == []
    assert deleted.json()["actual_hours"] == 0


def test_submit_then_reject_requires_reason(client):
    task = _create_task(client)
    entry = _log_hours(client, task["id"], 2)

    submitted = client.post(f"/time-entries/{entry['id']}/submit")
    assert submitted.json()["status"] == "submitted"

    missing = client.post(f"/time-entries/{entry['id']}/reject", json={"reason": "  "})
    assert missing.status_code == 422

    rejected = client.post(f"/time-entries/{entry['id']}/reject", json={"reason": "needs detail"})
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"
    assert rejected.json()["rejection_reason"] == "needs detail"

    again = client.post(f"/time-entries/{entry['id']}/approve", json={})
    assert again.status_code == 409
    assert again.json()["status"] == "rejected"


def test_bulk_approve_reports_each_entry(client):
    task = _create_task(client)
    submitted = _log_hours(client, task["id"], 1)
    draft = _log_hours(client, task["id"], 1)
    client.post(f"/time-entries/{submitted['id']}/submit")

    response = client.post(
        "/time-entries/bulk-approve",
        json={"entry_ids": [submitted["id"], draft["id"], 999], "approver": "Mike Chen"},
    )
    assert response.status_code == 200
    results = response.json()
    assert [item["ok"] for item in results] == [True, False, False]
    assert results[0]["entry"]["approved_by"] == "Mike Chen"
    assert results[1]["error"]["status"] == "draft"
    assert results[2]["error"]["entry_id"] == 999


def test_bulk_reject_without_reason_is_422(client):
    task = _create_task(client)
    entry = _log_hours(client, task["id"], 1)
    client.post(f"/time-entries/{entry['id']}/submit")
    response = client.post("/time-entries/bulk-reject", json={"entry_ids": [entry["id"]]})
    assert response.status_code == 422


def test_approval_queue_and_status_filter(client, clock):
    task = _create_task(client, project_id=3, assignee="Sarah Johnson")
    first = _log_hours(client, task["id"], 1, "Kickoff")
    second = _log_hours(client, task["id"], 2, "Specs")
    client.post(f"/time-entries/{first['id']}/submit")
    clock.advance(minutes=5)
    client.post(f"/time-entries/{second['id']}/submit")

    queue = client.get("/approvals/queue").json()
    assert [item["entry"]["id"] for item in queue] == [first["id"], second["id"]]
    assert queue[0]["task_title"] == "Authentication"
    assert queue[0]["assignee"] == "Sarah Johnson"

    by_status = client.get("/time-entries", params={"status": "submitted"}).json()
    assert [entry["id"] for entry in by_status] == [second["id"], first["id"]]
    assert client.get("/time-entries", params={"status": "approved"}).json() == []


def test_subtask_progress_over_http(client):
    parent = _create_task(client, title="Website redesign")
    children = [
        client.post(f"/tasks/{parent['id']}/subtasks", json={"title": f"Page {index}"}).json()
        for index in range(4)
    ]
    response = client.post(f"/tasks/{parent['id']}/subtasks/complete", json={"subtask_ids": [children[0]["id"]]})
    assert response.status_code == 200
    assert client.get(f"/tasks/{parent['id']}").json()["progress"] == 25

    rejected = client.patch(f"/tasks/{parent['id']}", json={"progress": 90})
    assert rejected.status_code == 422


def test_bulk_update_subtasks_over_http(client):
    parent = _create_task(client, title="Website redesign")
    children = [
        client.post(f"/tasks/{parent['id']}/subtasks", json={"title": f"Page {index}"}).json()
        for index in range(2)
    ]
    response = client.patch(
        f"/tasks/{parent['id']}/subtasks",
        json={"updates": [{"id": children[0]["id"], "changes": {"status": "completed", "assignee": "Mike Chen"}}]},
    )
    assert response.status_code == 200
    assert response.json()[0]["status"] == "completed"
    assert response.json()[0]["assignee"] == "Mike Chen"
    assert client.get(f"/tasks/{parent['id']}").json()["progress"] == 50


def test_patch_clears_description(client):
    task = _create_task(client, description="Landing page")
    response = client.patch(f"/tasks/{task['id']}", json={"description": None})
    assert response.status_code == 200
    assert response.json()["description"] is None


def test_approved_entry_cannot_be_deleted_over_http(client):
    task = _create_task(client)
    entry = _log_hours(client, task["id"], 1)
    client.post(f"/time-entries/{entry['id']}/submit")
    client.post(f"/time-entries/{entry['id']}/approve", json={})
    response = client.delete(f"/tasks/{task['id']}/time-entries/{entry['id']}")
    assert response.status_code == 409
    assert response.json()["status"] == "approved"
