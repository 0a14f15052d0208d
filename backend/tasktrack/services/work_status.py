"""Card status lifecycle and card-level mutations.

Status may move between any two of TODO, IN_PROGRESS, REVIEW and DONE. The
gates are:

* into DONE requires at least one TimeLog row for the card (open or closed);
* into IN_PROGRESS while assigning a user requires that user to have no other
  IN_PROGRESS card;
* changing the assignee re-runs the unfinished-work check unless the project
  is completed.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete
from sqlmodel import col, select

from tasktrack.core.errors import (
    ASSIGNEE_ALREADY_ACTIVE,
    CARD_NOT_DONE,
    NO_TIME_LOGGED,
    NOT_A_PROJECT_MEMBER,
    ConflictError,
    DomainError,
    StateError,
)
from tasktrack.core.logging import get_logger
from tasktrack.core.time import utcnow
from tasktrack.db.session import atomic
from tasktrack.integrations.broadcaster import card_channel, project_channel
from tasktrack.models.assignments import CardAssignment
from tasktrack.models.cards import Card, CardStatus, Comment, Subtask
from tasktrack.models.notifications import NotificationKind
from tasktrack.models.overtime import OvertimeApproval
from tasktrack.models.time_logs import TimeLog
from tasktrack.models.users import User
from tasktrack.services.assignment_registry import (
    apply_assignee,
    check_assignable,
    lock_active_assignments,
    unfinished_work_error,
)
from tasktrack.services.base import EngineService
from tasktrack.services.capabilities import ProjectCapabilities, capabilities_for
from tasktrack.services.commands import AssigneeChange, CardCommand, FieldEdit, StatusChange
from tasktrack.services.outbox import Outbox
from tasktrack.services.queries import (
    card_payload,
    has_time_logs,
    lock_user,
    member_ids,
    project_of,
    require_card,
    unfinished_assigned_cards,
)

logger = get_logger(__name__)

# Child rows removed together with a card.
_CARD_CHILDREN = (TimeLog, Comment, Subtask, CardAssignment, OvertimeApproval)


def _split(commands: Sequence[CardCommand]) -> tuple[StatusChange | None, AssigneeChange | None, FieldEdit | None]:
    status_change: StatusChange | None = None
    assignee_change: AssigneeChange | None = None
    edits: dict[str, object] = {}
    for command in commands:
        if isinstance(command, StatusChange):
            status_change = command
        elif isinstance(command, AssigneeChange):
            assignee_change = command
        elif isinstance(command, FieldEdit):
            edits.update(command.changes)
    return status_change, assignee_change, FieldEdit(edits) if edits else None


class WorkStatusMachine(EngineService):
    def update(
        self,
        card_id: int,
        commands: Sequence[CardCommand],
        actor: User,
        *,
        capabilities: ProjectCapabilities | None = None,
        now: datetime | None = None,
    ) -> Card:
        now = now or utcnow()
        session = self.session
        outbox = Outbox(actor_id=actor.id)
        status_change, assignee_change, field_edit = _split(commands)

        try:
            with atomic(session):
                card = require_card(session, card_id)
                project = project_of(session, card)
                caps = capabilities or capabilities_for(session, actor, project)

                if field_edit is not None:
                    caps.require(caps.can_edit_card, "Only project leaders, the project creator or admins can edit cards")
                if assignee_change is not None:
                    caps.require(caps.can_assign, "Only project leaders, the project creator or admins can assign cards")
                if status_change is not None:
                    caps.require(caps.can_change_status, "Observers cannot change card status")

                if status_change is not None and status_change.status == CardStatus.DONE:
                    if not has_time_logs(session, card.id):
                        raise StateError(
                            "Cannot mark a card as done without time tracking",
                            code=NO_TIME_LOGGED,
                            detail={"card_id": card.id},
                        )

                member = None
                new_assignee = assignee_change.assignee_id if assignee_change is not None else None
                if new_assignee is not None:
                    member = check_assignable(
                        session, card=card, project=project, assignee_id=new_assignee, caps=caps
                    )
                    lock_user(session, new_assignee)
                    if card.assignee_id != new_assignee and not project.is_completed:
                        blocking = unfinished_assigned_cards(
                            session, new_assignee, project.id, exclude_card_id=card.id
                        )
                        if blocking:
                            raise unfinished_work_error(new_assignee, blocking)
                    if status_change is not None and status_change.status == CardStatus.IN_PROGRESS:
                        active = session.exec(
                            select(Card)
                            .where(Card.assignee_id == new_assignee)
                            .where(Card.status == CardStatus.IN_PROGRESS)
                            .where(Card.id != card.id)
                        ).first()
                        if active is not None:
                            raise ConflictError(
                                "Assignee already has an active card",
                                code=ASSIGNEE_ALREADY_ACTIVE,
                                detail={"assignee_id": new_assignee, "active_card_id": active.id},
                            )

                previous_assignee = card.assignee_id
                if field_edit is not None:
                    for key, value in field_edit.changes.items():
                        setattr(card, key, value)
                if assignee_change is not None and assignee_change.assignee_id != previous_assignee:
                    lock_active_assignments(session, card.id)
                    apply_assignee(
                        session,
                        card,
                        assignee_id=assignee_change.assignee_id,
                        assigned_by=actor.id,
                        project_member_id=member.id if member is not None else None,
                        reason=assignee_change.reason,
                        now=now,
                    )
                if status_change is not None:
                    card.status = status_change.status
                card.updated_at = now
                session.add(card)
                session.flush()

                snapshot = card_payload(card)
                outbox.publish(card_channel(card.id), "card:updated", {"card": snapshot})
                outbox.publish(
                    project_channel(project.id),
                    "card:updated",
                    {"card": snapshot, "boardId": card.board_id},
                )
                self._fan_out(
                    outbox,
                    card=card,
                    actor=actor,
                    project_id=project.id,
                    previous_assignee=previous_assignee,
                    status_change=status_change,
                    field_edit=field_edit,
                )
        except DomainError as exc:
            logger.info("card.update.rejected card_id=%s code=%s", card_id, exc.code)
            raise

        logger.info("card.update.committed card_id=%s status=%s assignee_id=%s", card.id, card.status, card.assignee_id)
        self._deliver(outbox)
        return card

    def _fan_out(
        self,
        outbox: Outbox,
        *,
        card: Card,
        actor: User,
        project_id: int,
        previous_assignee: int | None,
        status_change: StatusChange | None,
        field_edit: FieldEdit | None,
    ) -> None:
        if card.assignee_id is not None and card.assignee_id != previous_assignee and card.assignee_id != actor.id:
            outbox.notify([card.assignee_id], NotificationKind.CARD_ASSIGNED, card.id, card.title, actor.name)

        if status_change is not None and status_change.status == CardStatus.DONE:
            recipients = member_ids(self.session, project_id) - {actor.id}
            outbox.notify(recipients, NotificationKind.CARD_COMPLETED, card.id, card.title, actor.name)

        if field_edit is None or card.assignee_id is None or card.assignee_id == actor.id:
            return
        changes: list[str] = []
        if field_edit.priority:
            changes.append(f"priority changed to {field_edit.priority}")
        if field_edit.due_date:
            changes.append("due date updated")
        if changes:
            outbox.notify(
                [card.assignee_id],
                NotificationKind.CARD_UPDATED,
                card.id,
                card.title,
                actor.name,
                ", ".join(changes),
            )

    def delete(
        self,
        card_id: int,
        actor: User,
        *,
        capabilities: ProjectCapabilities | None = None,
    ) -> None:
        session = self.session
        outbox = Outbox(actor_id=actor.id)

        with atomic(session):
            card = require_card(session, card_id)
            project = project_of(session, card)
            caps = capabilities or capabilities_for(session, actor, project)
            caps.require(caps.can_delete_card, "Only project leaders, the project creator or admins can delete cards")

            for model in _CARD_CHILDREN:
                session.execute(delete(model).where(col(model.card_id) == card.id))
            board_id = card.board_id
            session.delete(card)
            outbox.publish(
                project_channel(project.id),
                "card:deleted",
                {"cardId": card_id, "boardId": board_id},
            )

        logger.info("card.delete.committed card_id=%s project_id=%s", card_id, project.id)
        self._deliver(outbox)

    def reset(
        self,
        card_id: int,
        actor: User,
        *,
        capabilities: ProjectCapabilities | None = None,
        now: datetime | None = None,
    ) -> Card:
        """Reopen a DONE card as TODO with no assignee so it can be handed out again."""
        now = now or utcnow()
        session = self.session
        outbox = Outbox(actor_id=actor.id)

        with atomic(session):
            card = require_card(session, card_id)
            project = project_of(session, card)
            caps = capabilities or capabilities_for(session, actor, project)
            caps.require(
                caps.is_member or caps.is_admin or caps.is_creator,
                "You don't have access to this card",
                code=NOT_A_PROJECT_MEMBER,
            )
            if card.status != CardStatus.DONE:
                raise StateError(
                    "Only DONE cards can be reset for reassignment",
                    code=CARD_NOT_DONE,
                    detail={"card_id": card.id, "status": card.status},
                )
            lock_active_assignments(session, card.id)
            apply_assignee(
                session,
                card,
                assignee_id=None,
                assigned_by=actor.id,
                project_member_id=None,
                reason=None,
                now=now,
            )
            card.status = CardStatus.TODO
            session.add(card)
            session.flush()

            snapshot = card_payload(card)
            outbox.publish(card_channel(card.id), "card:updated", {"card": snapshot})
            outbox.publish(project_channel(project.id), "card:updated", {"card": snapshot, "boardId": card.board_id})

        logger.info("card.reset.committed card_id=%s", card.id)
        self._deliver(outbox)
        return card
