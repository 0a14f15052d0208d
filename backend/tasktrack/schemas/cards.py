from __future__ import annotations

from datetime import datetime

from sqlmodel import SQLModel

from tasktrack.models.cards import CardPriority, CardStatus


class CardRead(SQLModel):
    id: int
    board_id: int
    title: str
    description: str | None = None
    priority: str
    status: str
    due_date: datetime | None = None
    deadline: datetime | None = None
    assignee_id: int | None = None
    created_by: int
    created_at: datetime
    updated_at: datetime


class CardAssign(SQLModel):
    assignee_id: int | None = None
    reason: str | None = None


class CardUpdate(SQLModel):
    """Partial update. ``assignee_id: null`` explicitly unassigns; omitting it leaves it alone."""

    title: str | None = None
    description: str | None = None
    priority: CardPriority | None = None
    status: CardStatus | None = None
    due_date: datetime | None = None
    deadline: datetime | None = None
    assignee_id: int | None = None
    reason: str | None = None


class AssignmentRead(SQLModel):
    id: int
    card_id: int
    assigned_to: int
    assigned_by: int
    project_member_id: int | None = None
    reason: str | None = None
    is_active: bool
    assigned_at: datetime
    unassigned_at: datetime | None = None


class CardAssignmentResult(SQLModel):
    card: CardRead
    assignment: AssignmentRead | None = None
