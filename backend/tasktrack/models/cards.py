from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from tasktrack.core.time import utcnow


class CardStatus(StrEnum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    DONE = "DONE"


class CardPriority(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Card(SQLModel, table=True):
    __tablename__ = "cards"

    id: int | None = Field(default=None, primary_key=True)
    board_id: int = Field(foreign_key="boards.id", index=True)
    title: str
    description: str | None = None
    priority: str = Field(default=CardPriority.MEDIUM)
    status: str = Field(default=CardStatus.TODO, index=True)
    position: int = Field(default=0)

    due_date: datetime | None = None
    deadline: datetime | None = None

    # Mirrors the active CardAssignment; only written by the assignment write path.
    assignee_id: int | None = Field(default=None, foreign_key="users.id", index=True)
    created_by: int = Field(foreign_key="users.id")

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Subtask(SQLModel, table=True):
    __tablename__ = "subtasks"

    id: int | None = Field(default=None, primary_key=True)
    card_id: int = Field(foreign_key="cards.id", index=True)
    title: str
    status: str = Field(default=CardStatus.TODO)
    assignee_id: int | None = Field(default=None, foreign_key="users.id")
    position: int = Field(default=0)


class Comment(SQLModel, table=True):
    __tablename__ = "comments"

    id: int | None = Field(default=None, primary_key=True)
    card_id: int = Field(foreign_key="cards.id", index=True)
    user_id: int = Field(foreign_key="users.id")
    text: str

    created_at: datetime = Field(default_factory=utcnow)
