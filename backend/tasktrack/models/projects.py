from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from tasktrack.core.time import utcnow


class ProjectRole(StrEnum):
    LEADER = "LEADER"
    DEVELOPER = "DEVELOPER"
    DESIGNER = "DESIGNER"
    OBSERVER = "OBSERVER"


class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: str | None = None
    created_by: int = Field(foreign_key="users.id")

    # A completed project relaxes the one-task-per-user rule for card updates.
    is_completed: bool = Field(default=False)
    completed_at: datetime | None = None

    created_at: datetime = Field(default_factory=utcnow)


class ProjectMember(SQLModel, table=True):
    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),)

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    project_role: str = Field(default=ProjectRole.DEVELOPER)

    joined_at: datetime = Field(default_factory=utcnow)


class Board(SQLModel, table=True):
    __tablename__ = "boards"

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    name: str
    position: int = Field(default=0)
