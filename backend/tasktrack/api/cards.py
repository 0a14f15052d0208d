"""Card assignment, status and lifecycle endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status
from sqlmodel import Session

from tasktrack.api.deps import ACTOR_DEP, BROADCASTER_DEP, NOTIFIER_DEP, SESSION_DEP
from tasktrack.integrations.broadcaster import EventBroadcaster
from tasktrack.integrations.notify import Notifier
from tasktrack.models.users import User
from tasktrack.schemas.cards import (
    AssignmentRead,
    CardAssign,
    CardAssignmentResult,
    CardRead,
    CardUpdate,
)
from tasktrack.schemas.common import OkResponse
from tasktrack.services.assignment_registry import AssignmentRegistry
from tasktrack.services.commands import commands_from_update
from tasktrack.services.work_status import WorkStatusMachine

router = APIRouter(prefix="/cards", tags=["cards"])


@router.patch("/{card_id}/assign", response_model=CardAssignmentResult)
def assign_card(
    card_id: int,
    payload: CardAssign,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
    broadcaster: EventBroadcaster = BROADCASTER_DEP,
    notifier: Notifier = NOTIFIER_DEP,
) -> CardAssignmentResult:
    registry = AssignmentRegistry(session, broadcaster=broadcaster, notifier=notifier)
    result = registry.assign(card_id, payload.assignee_id, actor, reason=payload.reason)
    return CardAssignmentResult(
        card=CardRead.model_validate(result.card),
        assignment=AssignmentRead.model_validate(result.assignment) if result.assignment is not None else None,
    )


@router.patch("/{card_id}", response_model=CardRead)
def update_card(
    card_id: int,
    payload: CardUpdate,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
    broadcaster: EventBroadcaster = BROADCASTER_DEP,
    notifier: Notifier = NOTIFIER_DEP,
) -> CardRead:
    commands = commands_from_update(payload)
    machine = WorkStatusMachine(session, broadcaster=broadcaster, notifier=notifier)
    card = machine.update(card_id, commands, actor)
    return CardRead.model_validate(card)


@router.delete("/{card_id}", response_model=OkResponse)
def delete_card(
    card_id: int,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
    broadcaster: EventBroadcaster = BROADCASTER_DEP,
) -> OkResponse:
    WorkStatusMachine(session, broadcaster=broadcaster).delete(card_id, actor)
    return OkResponse()


@router.post("/{card_id}/reset", response_model=CardRead, status_code=status.HTTP_200_OK)
def reset_card(
    card_id: int,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
    broadcaster: EventBroadcaster = BROADCASTER_DEP,
) -> CardRead:
    card = WorkStatusMachine(session, broadcaster=broadcaster).reset(card_id, actor)
    return CardRead.model_validate(card)


@router.get("/{card_id}/assignment-history", response_model=list[AssignmentRead])
def card_assignment_history(
    card_id: int,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
) -> list[AssignmentRead]:
    rows = AssignmentRegistry(session).list_card_assignments(card_id)
    return [AssignmentRead.model_validate(row) for row in rows]
