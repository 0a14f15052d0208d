from __future__ import annotations

from fastapi import APIRouter, Query, status
from sqlmodel import Session

from tasktrack.api.deps import ACTOR_DEP, BROADCASTER_DEP, NOTIFIER_DEP, SESSION_DEP
from tasktrack.integrations.broadcaster import EventBroadcaster
from tasktrack.integrations.notify import Notifier
from tasktrack.models.users import User
from tasktrack.schemas.overtime import OvertimeApprovalRead, OvertimeRequestCreate, OvertimeResolve
from tasktrack.services.overtime_workflow import ApprovalListKind, OvertimeApprovalWorkflow

router = APIRouter(prefix="/overtime-approvals", tags=["overtime"])


@router.post("", response_model=OvertimeApprovalRead, status_code=status.HTTP_201_CREATED)
def request_overtime(
    payload: OvertimeRequestCreate,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
    broadcaster: EventBroadcaster = BROADCASTER_DEP,
    notifier: Notifier = NOTIFIER_DEP,
) -> OvertimeApprovalRead:
    workflow = OvertimeApprovalWorkflow(session, broadcaster=broadcaster, notifier=notifier)
    approval = workflow.request(payload.card_id, actor, payload.reason)
    return OvertimeApprovalRead.model_validate(approval)


@router.patch("/{approval_id}", response_model=OvertimeApprovalRead)
def resolve_overtime(
    approval_id: int,
    payload: OvertimeResolve,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
    broadcaster: EventBroadcaster = BROADCASTER_DEP,
    notifier: Notifier = NOTIFIER_DEP,
) -> OvertimeApprovalRead:
    workflow = OvertimeApprovalWorkflow(session, broadcaster=broadcaster, notifier=notifier)
    approval = workflow.resolve(approval_id, payload.action, actor, payload.approver_notes)
    return OvertimeApprovalRead.model_validate(approval)


@router.get("", response_model=list[OvertimeApprovalRead])
def list_overtime(
    type: ApprovalListKind = Query(default=ApprovalListKind.MY_REQUESTS),
    card_id: int | None = Query(default=None, alias="cardId"),
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
) -> list[OvertimeApprovalRead]:
    rows = OvertimeApprovalWorkflow(session).list_approvals(type, actor, card_id=card_id)
    return [OvertimeApprovalRead.model_validate(row) for row in rows]
