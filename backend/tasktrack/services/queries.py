"""Shared reads used by the engine's precondition checks."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import func
from sqlmodel import Session, col, select

from tasktrack.core.errors import card_not_found, project_not_found
from tasktrack.db import crud
from tasktrack.models.assignments import CardAssignment
from tasktrack.models.cards import Card, CardStatus
from tasktrack.models.projects import Board, Project, ProjectMember, ProjectRole
from tasktrack.models.time_logs import TimeLog
from tasktrack.models.users import User
from tasktrack.schemas.cards import CardRead
from tasktrack.schemas.time_logs import TimeLogRead


def require_card(session: Session, card_id: int, *, lock: bool = True) -> Card:
    card = crud.get_for_update(session, Card, card_id) if lock else session.get(Card, card_id)
    if card is None:
        raise card_not_found(card_id)
    return card


def project_of(session: Session, card: Card) -> Project:
    board = session.get(Board, card.board_id)
    project = session.get(Project, board.project_id) if board is not None else None
    if project is None:
        raise project_not_found(board.project_id if board is not None else -1)
    return project


def require_project(session: Session, project_id: int) -> Project:
    project = session.get(Project, project_id)
    if project is None:
        raise project_not_found(project_id)
    return project


def lock_user(session: Session, user_id: int) -> User | None:
    """Serialize operations that check then change one user's work (assignments, timers)."""
    return crud.get_for_update(session, User, user_id)


def get_member(session: Session, project_id: int, user_id: int) -> ProjectMember | None:
    return session.exec(
        select(ProjectMember)
        .where(ProjectMember.project_id == project_id)
        .where(ProjectMember.user_id == user_id)
    ).first()


def leader_ids(session: Session, project_id: int) -> set[int]:
    rows = session.exec(
        select(ProjectMember.user_id)
        .where(ProjectMember.project_id == project_id)
        .where(ProjectMember.project_role == ProjectRole.LEADER)
    ).all()
    return set(rows)


def member_ids(session: Session, project_id: int) -> set[int]:
    return set(session.exec(select(ProjectMember.user_id).where(ProjectMember.project_id == project_id)).all())


def project_cards(project_id: int):
    return select(Card).join(Board, col(Card.board_id) == col(Board.id)).where(Board.project_id == project_id)


def unfinished_assignments(
    session: Session, user_id: int, project_id: int, *, exclude_card_id: int
) -> list[Card]:
    """Non-DONE cards in the project on which the user holds an active assignment."""
    statement = (
        select(Card)
        .join(CardAssignment, col(CardAssignment.card_id) == col(Card.id))
        .join(Board, col(Card.board_id) == col(Board.id))
        .where(Board.project_id == project_id)
        .where(CardAssignment.assigned_to == user_id)
        .where(col(CardAssignment.is_active).is_(True))
        .where(Card.id != exclude_card_id)
        .where(Card.status != CardStatus.DONE)
        .order_by(col(Card.id))
    )
    # Table models are unhashable; collapse duplicate join rows by id.
    return list({card.id: card for card in session.exec(statement).all()}.values())


def unfinished_assigned_cards(
    session: Session, user_id: int, project_id: int, *, exclude_card_id: int
) -> list[Card]:
    """Non-DONE cards in the project whose current assignee is the user."""
    statement = (
        project_cards(project_id)
        .where(Card.assignee_id == user_id)
        .where(Card.id != exclude_card_id)
        .where(Card.status != CardStatus.DONE)
        .order_by(col(Card.id))
    )
    return list(session.exec(statement).all())


def count_cards(session: Session, statement) -> int:
    return session.exec(select(func.count()).select_from(statement.subquery())).one()


def has_time_logs(session: Session, card_id: int) -> bool:
    return session.exec(select(TimeLog.id).where(TimeLog.card_id == card_id).limit(1)).first() is not None


def open_time_logs(session: Session, user_id: int) -> Sequence[TimeLog]:
    return session.exec(
        select(TimeLog)
        .where(TimeLog.user_id == user_id)
        .where(col(TimeLog.end_time).is_(None))
        .with_for_update()
    ).all()


def blocking_card_detail(cards: Sequence[Card]) -> list[dict[str, Any]]:
    return [{"card_id": c.id, "title": c.title, "status": c.status} for c in cards]


def card_payload(card: Card) -> dict[str, Any]:
    return CardRead.model_validate(card).model_dump(mode="json")


def time_log_payload(log: TimeLog) -> dict[str, Any]:
    return TimeLogRead.model_validate(log).model_dump(mode="json")
