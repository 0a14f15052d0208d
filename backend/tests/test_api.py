# ruff: noqa

from datetime import timedelta

from conftest import as_user, log_time, make_card
from tasktrack.core.time import utcnow
from tasktrack.models import CardStatus


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_missing_user_header_is_unauthorized(client, world):
    resp = client.patch(f"/cards/{world.card_x.id}/assign", json={"assignee_id": world.dev_a.id})
    assert resp.status_code == 401


def test_assign_and_conflict(client, world):
    resp = client.patch(
        f"/cards/{world.card_x.id}/assign",
        json={"assignee_id": world.dev_a.id, "reason": "kickoff"},
        headers=as_user(world.leader),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["card"]["assignee_id"] == world.dev_a.id
    assert body["assignment"]["reason"] == "kickoff"

    resp = client.patch(
        f"/cards/{world.card_y.id}/assign",
        json={"assignee_id": world.dev_a.id},
        headers=as_user(world.leader),
    )
    assert resp.status_code == 409
    body = resp.json()
    assert body["code"] == "ASSIGNEE_HAS_UNFINISHED_WORK"
    assert [c["card_id"] for c in body["detail"]["blocking_cards"]] == [world.card_x.id]


def test_assign_forbidden_for_developer(client, world):
    resp = client.patch(
        f"/cards/{world.card_x.id}/assign",
        json={"assignee_id": world.dev_b.id},
        headers=as_user(world.dev_a),
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "NOT_AUTHORIZED"


def test_mark_done_without_time(client, world):
    resp = client.patch(f"/cards/{world.card_x.id}", json={"status": "DONE"}, headers=as_user(world.leader))

    assert resp.status_code == 400
    assert resp.json()["code"] == "NO_TIME_LOGGED"


def test_update_card_fields_and_status(client, session, world):
    log_time(session, world.card_x, world.dev_a)

    resp = client.patch(
        f"/cards/{world.card_x.id}",
        json={"title": "Renamed", "status": "DONE"},
        headers=as_user(world.leader),
    )

    assert resp.status_code == 200
    assert resp.json()["title"] == "Renamed"
    assert resp.json()["status"] == CardStatus.DONE


def test_empty_update_is_validation_error(client, world):
    resp = client.patch(f"/cards/{world.card_x.id}", json={}, headers=as_user(world.leader))
    assert resp.status_code == 422
    assert resp.json()["code"] == "VALIDATION_ERROR"


def test_timer_round_trip(client, world):
    client.patch(
        f"/cards/{world.card_x.id}/assign", json={"assignee_id": world.dev_a.id}, headers=as_user(world.leader)
    )

    started = client.post(f"/cards/{world.card_x.id}/time", headers=as_user(world.dev_a))
    assert started.status_code == 201
    log_id = started.json()["id"]
    assert started.json()["end_time"] is None

    again = client.post(f"/cards/{world.card_y.id}/time", headers=as_user(world.dev_a))
    assert again.status_code == 409
    assert again.json()["code"] == "ACTIVE_TIMER_EXISTS"

    stopped = client.patch(f"/time-logs/{log_id}/stop", headers=as_user(world.dev_a))
    assert stopped.status_code == 200
    assert stopped.json()["duration_minutes"] >= 0

    twice = client.patch(f"/time-logs/{log_id}/stop", headers=as_user(world.dev_a))
    assert twice.status_code == 400
    assert twice.json()["code"] == "ALREADY_STOPPED"

    logs = client.get(f"/cards/{world.card_x.id}/time", headers=as_user(world.dev_a)).json()
    assert [log["id"] for log in logs] == [log_id]

    status = client.get("/time-logs/work-hours-status", headers=as_user(world.dev_a)).json()
    assert status["has_active_timer"] is False


def test_overtime_flow(client, session, world):
    card = make_card(
        session,
        world.board,
        world.creator,
        "Late",
        assignee_id=world.dev_a.id,
        deadline=utcnow() - timedelta(days=3) + timedelta(hours=1),
    )

    created = client.post(
        "/overtime-approvals",
        json={"card_id": card.id, "reason": "blocked on review"},
        headers=as_user(world.dev_a),
    )
    assert created.status_code == 201
    approval = created.json()
    assert approval["status"] == "PENDING"
    assert approval["days_overdue"] == 3

    pending = client.get(
        "/overtime-approvals", params={"type": "pending-approvals"}, headers=as_user(world.leader)
    ).json()
    assert [a["id"] for a in pending] == [approval["id"]]

    resolved = client.patch(
        f"/overtime-approvals/{approval['id']}",
        json={"action": "reject", "approver_notes": "reassign instead"},
        headers=as_user(world.leader),
    )
    assert resolved.status_code == 200
    assert resolved.json()["status"] == "REJECTED"
    assert resolved.json()["approver_id"] == world.leader.id

    again = client.patch(
        f"/overtime-approvals/{approval['id']}",
        json={"action": "approve"},
        headers=as_user(world.leader),
    )
    assert again.status_code == 409
    assert again.json()["code"] == "ALREADY_RESOLVED"


def test_reset_and_history(client, session, world):
    client.patch(
        f"/cards/{world.card_x.id}/assign", json={"assignee_id": world.dev_a.id}, headers=as_user(world.leader)
    )
    log_time(session, world.card_x, world.dev_a)
    client.patch(f"/cards/{world.card_x.id}", json={"status": "DONE"}, headers=as_user(world.dev_a))

    reset = client.post(f"/cards/{world.card_x.id}/reset", headers=as_user(world.dev_b))
    assert reset.status_code == 200
    assert reset.json()["assignee_id"] is None

    history = client.get(f"/cards/{world.card_x.id}/assignment-history", headers=as_user(world.dev_b)).json()
    assert [h["is_active"] for h in history] == [False]
    project_history = client.get(
        f"/projects/{world.project.id}/assignment-history", headers=as_user(world.dev_b)
    ).json()
    assert [h["id"] for h in project_history] == [h["id"] for h in history]


def test_members_and_completion(client, world):
    added = client.post(
        f"/projects/{world.project.id}/members",
        json={"user_id": world.outsider.id, "project_role": "DEVELOPER"},
        headers=as_user(world.creator),
    )
    assert added.status_code == 201
    assert added.json()["project_role"] == "DEVELOPER"

    completed = client.patch(
        f"/projects/{world.project.id}/complete", json={"is_completed": True}, headers=as_user(world.creator)
    )
    assert completed.status_code == 200
    assert completed.json()["is_completed"] is True


def test_delete_card(client, session, world):
    resp = client.delete(f"/cards/{world.card_z.id}", headers=as_user(world.leader))
    assert resp.json() == {"ok": True}

    missing = client.delete(f"/cards/{world.card_z.id}", headers=as_user(world.leader))
    assert missing.status_code == 404
    assert missing.json()["code"] == "CARD_NOT_FOUND"


def test_event_stream_unknown_project(client, world):
    resp = client.get("/projects/9999/events/stream", headers=as_user(world.dev_a))
    assert resp.status_code == 404
    assert resp.json()["code"] == "PROJECT_NOT_FOUND"


def test_null_priority_is_validation_error(client, session, world):
    resp = client.patch(f"/cards/{world.card_x.id}", json={"priority": None}, headers=as_user(world.leader))

    assert resp.status_code == 422
    assert resp.json()["code"] == "VALIDATION_ERROR"
    assert session.get(type(world.card_x), world.card_x.id).priority == "MEDIUM"


def test_event_stream_unknown_card(client, world):
    resp = client.get("/cards/9999/events/stream", headers=as_user(world.dev_a))
    assert resp.status_code == 404
    assert resp.json()["code"] == "CARD_NOT_FOUND"
