# ruff: noqa

from datetime import timedelta

import pytest
from sqlmodel import select

from conftest import NOW, make_card
from tasktrack.core.errors import (
    ALREADY_RESOLVED,
    APPROVAL_NOT_FOUND,
    DUPLICATE_PENDING,
    NO_DEADLINE,
    NOT_ASSIGNEE,
    NOT_OVERDUE,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from tasktrack.models import ApprovalStatus, Notification, NotificationKind
from tasktrack.schemas.overtime import ApprovalAction
from tasktrack.services.overtime_workflow import ApprovalListKind, OvertimeApprovalWorkflow, days_overdue


@pytest.fixture
def workflow(session, broadcaster, notifier):
    return OvertimeApprovalWorkflow(session, broadcaster=broadcaster, notifier=notifier)


@pytest.fixture
def overdue_card(session, world):
    return make_card(
        session,
        world.board,
        world.creator,
        "Late card",
        assignee_id=world.dev_a.id,
        deadline=NOW - timedelta(days=3),
    )


def _notified(session, kind):
    return sorted(n.user_id for n in session.exec(select(Notification).where(Notification.type == kind)).all())


def test_request_creates_pending_approval(session, world, workflow, overdue_card):
    approval = workflow.request(overdue_card.id, world.dev_a, "blocked on review", now=NOW)

    assert approval.status == ApprovalStatus.PENDING
    assert approval.days_overdue == 3
    assert approval.requested_by == world.dev_a.id
    assert _notified(session, NotificationKind.OVERTIME_REQUEST) == sorted([world.creator.id, world.leader.id])


def test_creator_notified_of_own_request(session, world, workflow):
    card = make_card(
        session, world.board, world.creator, "Creator's card", assignee_id=world.creator.id,
        deadline=NOW - timedelta(days=1),
    )

    workflow.request(card.id, world.creator, "wrapping up", now=NOW)

    assert _notified(session, NotificationKind.OVERTIME_REQUEST) == sorted([world.creator.id, world.leader.id])


def test_partial_day_rounds_up(session, world, workflow):
    card = make_card(
        session, world.board, world.creator, "Slightly late", assignee_id=world.dev_a.id,
        deadline=NOW - timedelta(hours=1),
    )
    assert workflow.request(card.id, world.dev_a, "one more hour", now=NOW).days_overdue == 1


def test_deadline_exactly_now_is_not_overdue(session, world, workflow):
    card = make_card(session, world.board, world.creator, "On time", assignee_id=world.dev_a.id, deadline=NOW)

    with pytest.raises(StateError) as excinfo:
        workflow.request(card.id, world.dev_a, "just in case", now=NOW)
    assert excinfo.value.code == NOT_OVERDUE
    assert days_overdue(NOW, NOW) == 0


def test_request_requires_deadline(session, world, workflow):
    card = make_card(session, world.board, world.creator, "Open ended", assignee_id=world.dev_a.id)

    with pytest.raises(StateError) as excinfo:
        workflow.request(card.id, world.dev_a, "need time", now=NOW)
    assert excinfo.value.code == NO_DEADLINE


def test_only_assignee_can_request(world, workflow, overdue_card):
    with pytest.raises(AuthorizationError) as excinfo:
        workflow.request(overdue_card.id, world.dev_b, "helping out", now=NOW)
    assert excinfo.value.code == NOT_ASSIGNEE


def test_request_requires_reason(world, workflow, overdue_card):
    with pytest.raises(ValidationError):
        workflow.request(overdue_card.id, world.dev_a, "  ", now=NOW)


def test_duplicate_pending_rejected(world, workflow, overdue_card):
    workflow.request(overdue_card.id, world.dev_a, "blocked on review", now=NOW)

    with pytest.raises(ConflictError) as excinfo:
        workflow.request(overdue_card.id, world.dev_a, "still blocked", now=NOW)
    assert excinfo.value.code == DUPLICATE_PENDING


def test_new_request_allowed_after_resolution(world, workflow, overdue_card):
    first = workflow.request(overdue_card.id, world.dev_a, "blocked on review", now=NOW)
    workflow.resolve(first.id, ApprovalAction.APPROVE, world.leader, now=NOW)

    second = workflow.request(overdue_card.id, world.dev_a, "blocked again", now=NOW)
    assert second.id != first.id


def test_reject_then_resolve_again(session, world, workflow, overdue_card):
    approval = workflow.request(overdue_card.id, world.dev_a, "blocked on review", now=NOW)

    resolved = workflow.resolve(approval.id, ApprovalAction.REJECT, world.leader, "reassign instead", now=NOW)

    assert resolved.status == ApprovalStatus.REJECTED
    assert resolved.approver_id == world.leader.id
    assert resolved.approver_notes == "reassign instead"
    assert resolved.responded_at == NOW
    rejected = session.exec(select(Notification).where(Notification.type == NotificationKind.OVERTIME_REJECTED)).all()
    assert [n.user_id for n in rejected] == [world.dev_a.id]
    assert "reassign instead" in rejected[0].message

    with pytest.raises(ConflictError) as excinfo:
        workflow.resolve(approval.id, ApprovalAction.APPROVE, world.leader, now=NOW)
    assert excinfo.value.code == ALREADY_RESOLVED


def test_resolve_requires_manager(world, workflow, overdue_card):
    approval = workflow.request(overdue_card.id, world.dev_a, "blocked on review", now=NOW)

    with pytest.raises(AuthorizationError):
        workflow.resolve(approval.id, ApprovalAction.APPROVE, world.dev_b, now=NOW)

    resolved = workflow.resolve(approval.id, ApprovalAction.APPROVE, world.creator, now=NOW)
    assert resolved.status == ApprovalStatus.APPROVED


def test_admin_can_resolve(world, workflow, overdue_card):
    approval = workflow.request(overdue_card.id, world.dev_a, "blocked on review", now=NOW)
    assert workflow.resolve(approval.id, "approve", world.admin, now=NOW).status == ApprovalStatus.APPROVED


def test_resolve_unknown_approval(world, workflow):
    with pytest.raises(NotFoundError) as excinfo:
        workflow.resolve(777, ApprovalAction.APPROVE, world.leader, now=NOW)
    assert excinfo.value.code == APPROVAL_NOT_FOUND


def test_list_approvals(world, workflow, overdue_card):
    approval = workflow.request(overdue_card.id, world.dev_a, "blocked on review", now=NOW)

    assert [a.id for a in workflow.list_approvals(ApprovalListKind.MY_REQUESTS, world.dev_a)] == [approval.id]
    assert workflow.list_approvals(ApprovalListKind.MY_REQUESTS, world.dev_b) == []
    assert [a.id for a in workflow.list_approvals(ApprovalListKind.PENDING_APPROVALS, world.leader)] == [approval.id]
    assert [a.id for a in workflow.list_approvals(ApprovalListKind.PENDING_APPROVALS, world.creator)] == [approval.id]
    assert [a.id for a in workflow.list_approvals(ApprovalListKind.PENDING_APPROVALS, world.admin)] == [approval.id]
    assert workflow.list_approvals(ApprovalListKind.PENDING_APPROVALS, world.dev_b) == []
    assert [a.id for a in workflow.list_approvals(ApprovalListKind.CARD, world.dev_b, card_id=overdue_card.id)] == [
        approval.id
    ]
