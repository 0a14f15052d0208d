from __future__ import annotations

from datetime import datetime

from sqlmodel import SQLModel

from tasktrack.models.projects import ProjectRole


class ProjectRead(SQLModel):
    id: int
    name: str
    description: str | None = None
    created_by: int
    is_completed: bool
    completed_at: datetime | None = None


class ProjectCompletionUpdate(SQLModel):
    is_completed: bool


class ProjectMemberCreate(SQLModel):
    user_id: int
    project_role: ProjectRole


class ProjectMemberRead(SQLModel):
    id: int
    project_id: int
    user_id: int
    project_role: str
    joined_at: datetime
