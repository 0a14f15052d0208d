# ruff: noqa

from datetime import timedelta

import pytest
from sqlmodel import select

from conftest import NOW, log_time, make_card
from tasktrack.core.errors import (
    ASSIGNEE_ALREADY_ACTIVE,
    ASSIGNEE_HAS_UNFINISHED_WORK,
    CARD_NOT_DONE,
    NO_TIME_LOGGED,
    AuthorizationError,
    ConflictError,
    StateError,
    ValidationError,
)
from tasktrack.models import (
    Card,
    CardAssignment,
    CardPriority,
    CardStatus,
    Comment,
    Notification,
    NotificationKind,
    OvertimeApproval,
    Subtask,
    TimeLog,
)
from tasktrack.schemas.cards import CardUpdate
from tasktrack.services.assignment_registry import AssignmentRegistry
from tasktrack.services.commands import AssigneeChange, FieldEdit, StatusChange, commands_from_update
from tasktrack.services.work_status import WorkStatusMachine


@pytest.fixture
def machine(session, broadcaster, notifier):
    return WorkStatusMachine(session, broadcaster=broadcaster, notifier=notifier)


def _notifications(session, user, kind):
    return session.exec(
        select(Notification).where(Notification.user_id == user.id).where(Notification.type == kind)
    ).all()


def test_done_without_time_logged_is_rejected(session, world, machine):
    with pytest.raises(StateError) as excinfo:
        machine.update(world.card_x.id, [StatusChange(CardStatus.DONE)], world.leader, now=NOW)

    assert excinfo.value.code == NO_TIME_LOGGED
    assert session.get(Card, world.card_x.id).status == CardStatus.TODO


def test_done_with_running_log_succeeds(session, world, machine):
    log_time(session, world.card_x, world.dev_a, running=True)

    card = machine.update(world.card_x.id, [StatusChange(CardStatus.DONE)], world.leader, now=NOW)

    assert card.status == CardStatus.DONE


def test_status_moves_in_any_direction(session, world, machine):
    log_time(session, world.card_x, world.dev_a)
    for status in (CardStatus.REVIEW, CardStatus.DONE, CardStatus.IN_PROGRESS, CardStatus.TODO):
        card = machine.update(world.card_x.id, [StatusChange(status)], world.dev_a, now=NOW)
        assert card.status == status


def test_update_publishes_on_both_channels(session, world, machine, broadcaster):
    machine.update(world.card_x.id, [StatusChange(CardStatus.REVIEW)], world.dev_a, now=NOW)

    card_event = broadcaster.latest(f"cards/{world.card_x.id}", "card:updated")
    project_event = broadcaster.latest(f"projects/{world.project.id}", "card:updated")
    assert card_event["card"]["status"] == CardStatus.REVIEW
    assert project_event["card"]["status"] == CardStatus.REVIEW
    assert card_event["_nonce"] != project_event["_nonce"]


def test_in_progress_with_busy_assignee_is_rejected(session, world, machine):
    busy = make_card(
        session, world.board, world.creator, "Other", status=CardStatus.IN_PROGRESS, assignee_id=world.dev_a.id
    )
    world.project.is_completed = True
    session.add(world.project)
    session.commit()

    with pytest.raises(ConflictError) as excinfo:
        machine.update(
            world.card_x.id,
            [AssigneeChange(world.dev_a.id), StatusChange(CardStatus.IN_PROGRESS)],
            world.leader,
            now=NOW,
        )

    assert excinfo.value.code == ASSIGNEE_ALREADY_ACTIVE
    assert excinfo.value.detail["active_card_id"] == busy.id


def test_assignee_change_runs_unfinished_work_check(session, world, machine):
    make_card(session, world.board, world.creator, "Other", assignee_id=world.dev_a.id)

    with pytest.raises(ConflictError) as excinfo:
        machine.update(world.card_x.id, [AssigneeChange(world.dev_a.id)], world.leader, now=NOW)

    assert excinfo.value.code == ASSIGNEE_HAS_UNFINISHED_WORK
    assert session.get(Card, world.card_x.id).assignee_id is None


def test_completed_project_relaxes_unfinished_work_check(session, world, machine):
    make_card(session, world.board, world.creator, "Other", assignee_id=world.dev_a.id)
    world.project.is_completed = True
    session.add(world.project)
    session.commit()

    card = machine.update(world.card_x.id, [AssigneeChange(world.dev_a.id)], world.leader, now=NOW)

    assert card.assignee_id == world.dev_a.id


def test_assignee_change_goes_through_assignment_history(session, world, machine):
    machine.update(world.card_x.id, [AssigneeChange(world.dev_a.id, "handover")], world.leader, now=NOW)
    machine.update(world.card_x.id, [AssigneeChange(world.dev_b.id)], world.leader, now=NOW)

    rows = session.exec(select(CardAssignment).where(CardAssignment.card_id == world.card_x.id)).all()
    active = [r for r in rows if r.is_active]
    assert len(rows) == 2
    assert [r.assigned_to for r in active] == [world.dev_b.id]
    assert session.get(Card, world.card_x.id).assignee_id == world.dev_b.id


def test_field_edits_need_manager(session, world, machine):
    with pytest.raises(AuthorizationError):
        machine.update(world.card_x.id, [FieldEdit({"title": "Renamed"})], world.dev_a, now=NOW)

    card = machine.update(world.card_x.id, [FieldEdit({"title": "Renamed"})], world.leader, now=NOW)
    assert card.title == "Renamed"


def test_observer_cannot_change_status(session, world, machine):
    with pytest.raises(AuthorizationError):
        machine.update(world.card_x.id, [StatusChange(CardStatus.REVIEW)], world.observer, now=NOW)


def test_completion_notifies_members_except_actor(session, world, machine):
    log_time(session, world.card_x, world.dev_a)

    machine.update(world.card_x.id, [StatusChange(CardStatus.DONE)], world.dev_a, now=NOW)

    assert _notifications(session, world.dev_a, NotificationKind.CARD_COMPLETED) == []
    for user in (world.leader, world.dev_b, world.observer):
        assert len(_notifications(session, user, NotificationKind.CARD_COMPLETED)) == 1


def test_priority_change_notifies_assignee(session, world, machine):
    machine.update(world.card_x.id, [AssigneeChange(world.dev_a.id)], world.leader, now=NOW)

    machine.update(world.card_x.id, [FieldEdit({"priority": CardPriority.HIGH})], world.leader, now=NOW)

    updates = _notifications(session, world.dev_a, NotificationKind.CARD_UPDATED)
    assert len(updates) == 1
    assert "priority changed to HIGH" in updates[0].message
    assert len(_notifications(session, world.dev_a, NotificationKind.CARD_ASSIGNED)) == 1


def test_delete_cascades_children(session, world, machine, broadcaster):
    card = world.card_x
    log_time(session, card, world.dev_a)
    session.add(Comment(card_id=card.id, user_id=world.dev_a.id, text="hi"))
    session.add(Subtask(card_id=card.id, title="step"))
    session.add(OvertimeApproval(card_id=card.id, requested_by=world.dev_a.id, reason="late", days_overdue=1))
    session.commit()
    AssignmentRegistry(session).assign(card.id, world.dev_a.id, world.leader, now=NOW)

    machine.delete(card.id, world.leader)

    assert session.get(Card, card.id) is None
    for model in (TimeLog, Comment, Subtask, CardAssignment, OvertimeApproval):
        assert session.exec(select(model).where(model.card_id == card.id)).all() == []
    event = broadcaster.latest(f"projects/{world.project.id}", "card:deleted")
    assert event["cardId"] == card.id


def test_delete_requires_manager(session, world, machine):
    with pytest.raises(AuthorizationError):
        machine.delete(world.card_x.id, world.dev_a)
    assert session.get(Card, world.card_x.id) is not None


def test_reset_reopens_done_card_without_assignee(session, world, machine):
    machine.update(world.card_x.id, [AssigneeChange(world.dev_a.id)], world.leader, now=NOW)
    log_time(session, world.card_x, world.dev_a)
    machine.update(world.card_x.id, [StatusChange(CardStatus.DONE)], world.dev_a, now=NOW)

    card = machine.reset(world.card_x.id, world.dev_b, now=NOW + timedelta(minutes=5))

    assert card.status == CardStatus.TODO
    assert card.assignee_id is None
    active = session.exec(
        select(CardAssignment).where(CardAssignment.card_id == card.id).where(CardAssignment.is_active == True)
    ).all()
    assert active == []


def test_reset_requires_done(session, world, machine):
    with pytest.raises(StateError) as excinfo:
        machine.reset(world.card_x.id, world.dev_a, now=NOW)
    assert excinfo.value.code == CARD_NOT_DONE


def test_commands_from_partial_update():
    payload = CardUpdate.model_validate({"status": "REVIEW", "assignee_id": None, "title": "New"})

    commands = commands_from_update(payload)

    assert StatusChange(CardStatus.REVIEW) in commands
    assert AssigneeChange(None) in commands
    assert FieldEdit({"title": "New"}) in commands


def test_commands_reject_empty_update():
    with pytest.raises(ValidationError):
        commands_from_update(CardUpdate.model_validate({}))


def test_field_edit_rejects_blank_title():
    with pytest.raises(ValidationError):
        FieldEdit({"title": "   "})


@pytest.mark.parametrize("name", ["priority", "title"])
def test_field_edit_rejects_clearing_required_field(name):
    with pytest.raises(ValidationError) as excinfo:
        commands_from_update(CardUpdate.model_validate({name: None}))
    assert excinfo.value.detail == {"fields": [name]}


def test_field_edit_allows_clearing_deadline():
    assert commands_from_update(CardUpdate.model_validate({"deadline": None})) == [FieldEdit({"deadline": None})]
