"""Card assignment: at most one active assignment per card, one unfinished card per user per project.

``apply_assignee`` is the only code that writes ``Card.assignee_id`` or
``CardAssignment.is_active``; every other component goes through it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import update
from sqlmodel import Session, col, select

from tasktrack.core.errors import (
    ASSIGNEE_HAS_UNFINISHED_WORK,
    ASSIGNEE_IS_OBSERVER,
    ASSIGNEE_NOT_MEMBER,
    ConflictError,
    DomainError,
    ValidationError,
)
from tasktrack.core.logging import get_logger
from tasktrack.core.time import utcnow
from tasktrack.db.session import atomic
from tasktrack.integrations.broadcaster import card_channel, project_channel
from tasktrack.models.assignments import CardAssignment
from tasktrack.models.cards import Card, CardStatus
from tasktrack.models.notifications import NotificationKind
from tasktrack.models.projects import Board, Project, ProjectMember, ProjectRole
from tasktrack.models.users import User
from tasktrack.services.base import EngineService
from tasktrack.services.capabilities import ProjectCapabilities, capabilities_for
from tasktrack.services.outbox import Outbox
from tasktrack.services.queries import (
    blocking_card_detail,
    card_payload,
    get_member,
    lock_user,
    project_of,
    require_card,
    require_project,
    unfinished_assignments,
)

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AssignmentResult:
    card: Card
    assignment: CardAssignment | None


def lock_active_assignments(session: Session, card_id: int) -> list[CardAssignment]:
    return list(
        session.exec(
            select(CardAssignment)
            .where(CardAssignment.card_id == card_id)
            .where(col(CardAssignment.is_active).is_(True))
            .with_for_update()
        ).all()
    )


def apply_assignee(
    session: Session,
    card: Card,
    *,
    assignee_id: int | None,
    assigned_by: int,
    project_member_id: int | None,
    reason: str | None,
    now: datetime,
) -> CardAssignment | None:
    """Replace the card's active assignment and keep ``Card.assignee_id`` in step.

    Deactivates *every* active row for the card, then inserts the new one.
    """
    session.execute(
        update(CardAssignment)
        .where(col(CardAssignment.card_id) == card.id)
        .where(col(CardAssignment.is_active).is_(True))
        .values(is_active=False, unassigned_at=now)
        .execution_options(synchronize_session="fetch")
    )
    assignment: CardAssignment | None = None
    if assignee_id is not None:
        assignment = CardAssignment(
            card_id=card.id,
            assigned_to=assignee_id,
            assigned_by=assigned_by,
            project_member_id=project_member_id,
            reason=reason,
            is_active=True,
            assigned_at=now,
        )
        session.add(assignment)
    card.assignee_id = assignee_id
    card.updated_at = now
    session.add(card)
    session.flush()
    return assignment


def check_assignable(
    session: Session,
    *,
    card: Card,
    project: Project,
    assignee_id: int,
    caps: ProjectCapabilities,
) -> ProjectMember:
    """Membership and observer checks shared by assign and card updates."""
    member = get_member(session, project.id, assignee_id)
    if member is None:
        raise ValidationError(
            "Assignee must be a member of this project",
            code=ASSIGNEE_NOT_MEMBER,
            detail={"assignee_id": assignee_id, "project_id": project.id},
        )
    if member.project_role == ProjectRole.OBSERVER and not caps.is_admin:
        raise ValidationError(
            "Cannot assign cards to observers",
            code=ASSIGNEE_IS_OBSERVER,
            detail={"assignee_id": assignee_id},
        )
    return member


def unfinished_work_error(assignee_id: int, cards: list[Card]) -> ConflictError:
    titles = ", ".join(f'"{c.title}"' for c in cards)
    return ConflictError(
        f"User already has {len(cards)} unfinished card(s): {titles}. Complete them first.",
        code=ASSIGNEE_HAS_UNFINISHED_WORK,
        detail={"assignee_id": assignee_id, "blocking_cards": blocking_card_detail(cards)},
    )


class AssignmentRegistry(EngineService):
    def assign(
        self,
        card_id: int,
        assignee_id: int | None,
        actor: User,
        *,
        reason: str | None = None,
        capabilities: ProjectCapabilities | None = None,
        now: datetime | None = None,
    ) -> AssignmentResult:
        now = now or utcnow()
        session = self.session
        outbox = Outbox(actor_id=actor.id)

        try:
            with atomic(session):
                card = require_card(session, card_id)
                project = project_of(session, card)
                caps = capabilities or capabilities_for(session, actor, project)
                caps.require(caps.can_assign, "Only project leaders, the project creator or admins can assign cards")

                member: ProjectMember | None = None
                if assignee_id is not None:
                    member = check_assignable(
                        session, card=card, project=project, assignee_id=assignee_id, caps=caps
                    )
                    lock_user(session, assignee_id)
                    blocking = unfinished_assignments(
                        session, assignee_id, project.id, exclude_card_id=card.id
                    )
                    if blocking:
                        raise unfinished_work_error(assignee_id, blocking)

                lock_active_assignments(session, card.id)
                previous_assignee = card.assignee_id
                assignment = apply_assignee(
                    session,
                    card,
                    assignee_id=assignee_id,
                    assigned_by=actor.id,
                    project_member_id=member.id if member is not None else None,
                    reason=reason,
                    now=now,
                )
                if card.status == CardStatus.DONE and assignee_id is not None:
                    card.status = CardStatus.TODO
                    session.add(card)
                    session.flush()

                snapshot = card_payload(card)
                outbox.publish(
                    card_channel(card.id),
                    "card:assigned",
                    {"card": snapshot, "assigneeId": assignee_id},
                )
                outbox.publish(
                    project_channel(project.id),
                    "card:updated",
                    {"card": snapshot, "boardId": card.board_id, "assigneeId": assignee_id},
                )
                if assignee_id is not None and assignee_id != actor.id and assignee_id != previous_assignee:
                    outbox.notify(
                        [assignee_id], NotificationKind.CARD_ASSIGNED, card.id, card.title, actor.name
                    )
        except DomainError as exc:
            logger.info("card.assign.rejected card_id=%s code=%s", card_id, exc.code)
            raise

        logger.info(
            "card.assign.committed card_id=%s assignee_id=%s previous=%s",
            card.id,
            assignee_id,
            previous_assignee,
        )
        self._deliver(outbox)
        return AssignmentResult(card=card, assignment=assignment)

    def list_card_assignments(self, card_id: int) -> list[CardAssignment]:
        require_card(self.session, card_id, lock=False)
        return list(
            self.session.exec(
                select(CardAssignment)
                .where(CardAssignment.card_id == card_id)
                .order_by(col(CardAssignment.assigned_at).desc(), col(CardAssignment.id).desc())
            ).all()
        )

    def list_project_assignments(self, project_id: int) -> list[CardAssignment]:
        require_project(self.session, project_id)
        return list(
            self.session.exec(
                select(CardAssignment)
                .join(Card, col(CardAssignment.card_id) == col(Card.id))
                .join(Board, col(Card.board_id) == col(Board.id))
                .where(Board.project_id == project_id)
                .order_by(col(CardAssignment.assigned_at).desc(), col(CardAssignment.id).desc())
            ).all()
        )
