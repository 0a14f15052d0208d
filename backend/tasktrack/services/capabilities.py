"""Per-request capability checks for one (acting user, project) pair."""

from __future__ import annotations

from dataclasses import dataclass

from sqlmodel import Session

from tasktrack.core.errors import NOT_AUTHORIZED, AuthorizationError
from tasktrack.models.projects import Project, ProjectRole
from tasktrack.models.users import GlobalRole, User
from tasktrack.services.queries import get_member


@dataclass(frozen=True, slots=True)
class ProjectCapabilities:
    user_id: int
    project_id: int
    is_admin: bool
    is_creator: bool
    project_role: ProjectRole | None

    @property
    def is_member(self) -> bool:
        return self.project_role is not None

    @property
    def is_leader(self) -> bool:
        return self.project_role == ProjectRole.LEADER

    @property
    def is_manager(self) -> bool:
        return self.is_admin or self.is_creator or self.is_leader

    @property
    def can_assign(self) -> bool:
        return self.is_manager

    @property
    def can_edit_card(self) -> bool:
        return self.is_manager

    @property
    def can_delete_card(self) -> bool:
        return self.is_manager

    @property
    def can_manage_approvals(self) -> bool:
        return self.is_manager

    @property
    def can_manage_members(self) -> bool:
        return self.is_manager

    @property
    def can_complete_project(self) -> bool:
        return self.is_admin or self.is_creator

    @property
    def can_change_status(self) -> bool:
        if self.is_admin or self.is_creator:
            return True
        return self.is_member and self.project_role != ProjectRole.OBSERVER

    def require(self, allowed: bool, message: str, *, code: str = NOT_AUTHORIZED) -> None:
        if not allowed:
            raise AuthorizationError(
                message,
                code=code,
                detail={"user_id": self.user_id, "project_id": self.project_id},
            )


def capabilities_for(session: Session, user: User, project: Project) -> ProjectCapabilities:
    member = get_member(session, project.id, user.id)
    return ProjectCapabilities(
        user_id=user.id,
        project_id=project.id,
        is_admin=user.global_role == GlobalRole.ADMIN,
        is_creator=project.created_by == user.id,
        project_role=ProjectRole(member.project_role) if member is not None else None,
    )
