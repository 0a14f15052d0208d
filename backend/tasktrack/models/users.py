from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from tasktrack.core.time import utcnow


class GlobalRole(StrEnum):
    ADMIN = "ADMIN"
    LEADER = "LEADER"
    MEMBER = "MEMBER"


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    global_role: str = Field(default=GlobalRole.MEMBER)  # ADMIN | LEADER | MEMBER

    created_at: datetime = Field(default_factory=utcnow)
