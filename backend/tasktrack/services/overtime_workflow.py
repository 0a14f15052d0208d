"""Overtime approvals: PENDING -> APPROVED | REJECTED, both terminal.

Approval is an audit record. Resolving a request does not unlock any card or
timer operation.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from enum import StrEnum

from sqlmodel import col, select

from tasktrack.core.errors import (
    ALREADY_RESOLVED,
    APPROVAL_NOT_FOUND,
    DUPLICATE_PENDING,
    NO_DEADLINE,
    NOT_ASSIGNEE,
    NOT_OVERDUE,
    AuthorizationError,
    ConflictError,
    DomainError,
    NotFoundError,
    StateError,
    ValidationError,
)
from tasktrack.core.logging import get_logger
from tasktrack.core.time import utcnow
from tasktrack.db import crud
from tasktrack.db.session import atomic
from tasktrack.models.cards import Card
from tasktrack.models.notifications import NotificationKind
from tasktrack.models.overtime import ApprovalStatus, OvertimeApproval
from tasktrack.models.projects import Board, Project, ProjectMember, ProjectRole
from tasktrack.models.users import GlobalRole, User
from tasktrack.schemas.overtime import ApprovalAction
from tasktrack.services.base import EngineService
from tasktrack.services.capabilities import ProjectCapabilities, capabilities_for
from tasktrack.services.outbox import Outbox
from tasktrack.services.queries import leader_ids, project_of, require_card

logger = get_logger(__name__)

ONE_DAY = timedelta(days=1)


class ApprovalListKind(StrEnum):
    MY_REQUESTS = "my-requests"
    PENDING_APPROVALS = "pending-approvals"
    CARD = "card"


def days_overdue(deadline: datetime, now: datetime) -> int:
    """Whole days past the deadline, rounded up; zero or negative when not overdue."""
    return math.ceil((now - deadline) / ONE_DAY)


class OvertimeApprovalWorkflow(EngineService):
    def request(
        self,
        card_id: int,
        user: User,
        reason: str,
        *,
        now: datetime | None = None,
    ) -> OvertimeApproval:
        now = now or utcnow()
        session = self.session
        outbox = Outbox(actor_id=user.id)
        if not (reason or "").strip():
            raise ValidationError("A reason is required to request overtime", detail={"fields": ["reason"]})

        try:
            with atomic(session):
                card = require_card(session, card_id)
                if card.assignee_id != user.id:
                    raise AuthorizationError(
                        "Only the card's assignee can request overtime",
                        code=NOT_ASSIGNEE,
                        detail={"card_id": card.id},
                    )
                if card.deadline is None:
                    raise StateError("This card has no deadline", code=NO_DEADLINE, detail={"card_id": card.id})
                overdue = days_overdue(card.deadline, now)
                if overdue <= 0:
                    raise StateError(
                        "This card is not overdue yet",
                        code=NOT_OVERDUE,
                        detail={"card_id": card.id, "deadline": card.deadline.isoformat()},
                    )
                existing = session.exec(
                    select(OvertimeApproval)
                    .where(OvertimeApproval.card_id == card.id)
                    .where(OvertimeApproval.requested_by == user.id)
                    .where(OvertimeApproval.status == ApprovalStatus.PENDING)
                ).first()
                if existing is not None:
                    raise ConflictError(
                        "You already have a pending overtime request for this card",
                        code=DUPLICATE_PENDING,
                        detail={"approval_id": existing.id},
                    )

                approval = crud.create(
                    session,
                    OvertimeApproval,
                    card_id=card.id,
                    requested_by=user.id,
                    reason=reason.strip(),
                    days_overdue=overdue,
                    status=ApprovalStatus.PENDING,
                    requested_at=now,
                )
                project = project_of(session, card)
                recipients = (leader_ids(session, project.id) - {user.id}) | {project.created_by}
                outbox.notify(
                    recipients,
                    NotificationKind.OVERTIME_REQUEST,
                    card.id,
                    card.title,
                    user.name,
                    f"{overdue} day(s) overdue",
                    link="/overtime-approvals",
                )
        except DomainError as exc:
            logger.info("overtime.request.rejected card_id=%s user_id=%s code=%s", card_id, user.id, exc.code)
            raise

        logger.info("overtime.request.committed approval_id=%s days_overdue=%s", approval.id, overdue)
        self._deliver(outbox)
        return approval

    def resolve(
        self,
        approval_id: int,
        action: ApprovalAction,
        actor: User,
        notes: str | None = None,
        *,
        capabilities: ProjectCapabilities | None = None,
        now: datetime | None = None,
    ) -> OvertimeApproval:
        now = now or utcnow()
        session = self.session
        outbox = Outbox(actor_id=actor.id)

        try:
            with atomic(session):
                approval = crud.get_for_update(session, OvertimeApproval, approval_id)
                if approval is None:
                    raise NotFoundError(
                        f"Overtime approval {approval_id} not found",
                        code=APPROVAL_NOT_FOUND,
                        detail={"approval_id": approval_id},
                    )
                if approval.status != ApprovalStatus.PENDING:
                    raise ConflictError(
                        "This request has already been processed",
                        code=ALREADY_RESOLVED,
                        detail={"approval_id": approval.id, "status": approval.status},
                    )
                card = require_card(session, approval.card_id, lock=False)
                project = project_of(session, card)
                caps = capabilities or capabilities_for(session, actor, project)
                caps.require(
                    caps.can_manage_approvals,
                    "Only project leaders, the project creator or admins can process overtime requests",
                )

                approved = ApprovalAction(action) == ApprovalAction.APPROVE
                approval.status = ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED
                approval.approver_id = actor.id
                approval.approver_notes = notes
                approval.responded_at = now
                crud.save(session, approval)

                outbox.notify(
                    [approval.requested_by],
                    NotificationKind.OVERTIME_APPROVED if approved else NotificationKind.OVERTIME_REJECTED,
                    card.id,
                    card.title,
                    actor.name,
                    notes,
                    link="/overtime-approvals",
                )
        except DomainError as exc:
            logger.info("overtime.resolve.rejected approval_id=%s code=%s", approval_id, exc.code)
            raise

        logger.info("overtime.resolve.committed approval_id=%s status=%s", approval.id, approval.status)
        self._deliver(outbox)
        return approval

    def list_approvals(
        self,
        kind: ApprovalListKind,
        user: User,
        *,
        card_id: int | None = None,
    ) -> list[OvertimeApproval]:
        statement = select(OvertimeApproval)
        if kind == ApprovalListKind.MY_REQUESTS:
            statement = statement.where(OvertimeApproval.requested_by == user.id)
        elif kind == ApprovalListKind.CARD:
            if card_id is None:
                raise ValidationError("card_id is required", detail={"fields": ["card_id"]})
            require_card(self.session, card_id, lock=False)
            statement = statement.where(OvertimeApproval.card_id == card_id)
        else:
            statement = statement.where(OvertimeApproval.status == ApprovalStatus.PENDING)
            if user.global_role != GlobalRole.ADMIN:
                led = select(ProjectMember.project_id).where(
                    ProjectMember.user_id == user.id, ProjectMember.project_role == ProjectRole.LEADER
                )
                created = select(Project.id).where(Project.created_by == user.id)
                statement = (
                    statement.join(Card, col(OvertimeApproval.card_id) == col(Card.id))
                    .join(Board, col(Card.board_id) == col(Board.id))
                    .where(col(Board.project_id).in_(led) | col(Board.project_id).in_(created))
                )
        statement = statement.order_by(col(OvertimeApproval.requested_at).desc(), col(OvertimeApproval.id).desc())
        return list(self.session.exec(statement).all())
