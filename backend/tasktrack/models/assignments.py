from __future__ import annotations

from datetime import datetime

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from tasktrack.core.time import utcnow


class CardAssignment(SQLModel, table=True):
    """One user being assigned to one card. Rows are deactivated, never deleted."""

    __tablename__ = "card_assignments"
    __table_args__ = (
        Index("ix_card_assignments_card_active", "card_id", "is_active"),
        Index("ix_card_assignments_user_active", "assigned_to", "is_active"),
    )

    id: int | None = Field(default=None, primary_key=True)
    card_id: int = Field(foreign_key="cards.id")
    assigned_to: int = Field(foreign_key="users.id")
    assigned_by: int = Field(foreign_key="users.id")
    project_member_id: int | None = Field(default=None, foreign_key="project_members.id")
    reason: str | None = None

    is_active: bool = Field(default=True)
    assigned_at: datetime = Field(default_factory=utcnow)
    unassigned_at: datetime | None = None
