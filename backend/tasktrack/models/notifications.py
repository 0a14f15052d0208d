from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from tasktrack.core.time import utcnow


class NotificationKind(StrEnum):
    CARD_ASSIGNED = "CARD_ASSIGNED"
    CARD_UPDATED = "CARD_UPDATED"
    CARD_COMPLETED = "CARD_COMPLETED"
    OVERTIME_REQUEST = "OVERTIME_REQUEST"
    OVERTIME_APPROVED = "OVERTIME_APPROVED"
    OVERTIME_REJECTED = "OVERTIME_REJECTED"
    PROJECT_INVITE = "PROJECT_INVITE"


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    type: str
    title: str
    message: str
    link: str | None = None
    is_read: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utcnow)
