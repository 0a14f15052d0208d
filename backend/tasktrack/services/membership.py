"""Project membership and completion.

A project has at most one LEADER member, a user leads at most one project
system-wide, and only users with the global LEADER role may lead.
"""

from __future__ import annotations

from datetime import datetime

from sqlmodel import select

from tasktrack.core.errors import (
    ALREADY_MEMBER,
    INVALID_LEADER,
    LEADER_CONFLICT,
    USER_NOT_FOUND,
    ConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
)
from tasktrack.core.logging import get_logger
from tasktrack.core.time import utcnow
from tasktrack.db import crud
from tasktrack.db.session import atomic
from tasktrack.integrations.broadcaster import project_channel
from tasktrack.models.notifications import NotificationKind
from tasktrack.models.projects import Project, ProjectMember, ProjectRole
from tasktrack.models.users import GlobalRole, User
from tasktrack.services.base import EngineService
from tasktrack.services.capabilities import ProjectCapabilities, capabilities_for
from tasktrack.services.outbox import Outbox
from tasktrack.services.queries import get_member, lock_user, require_project

logger = get_logger(__name__)


class ProjectMembership(EngineService):
    def add_member(
        self,
        project_id: int,
        user_id: int,
        role: ProjectRole,
        actor: User,
        *,
        capabilities: ProjectCapabilities | None = None,
        now: datetime | None = None,
    ) -> ProjectMember:
        now = now or utcnow()
        session = self.session
        outbox = Outbox(actor_id=actor.id)
        role = ProjectRole(role)

        try:
            with atomic(session):
                project = require_project(session, project_id)
                caps = capabilities or capabilities_for(session, actor, project)
                caps.require(
                    caps.can_manage_members,
                    "Only the project creator, admins or the project leader can add members",
                )
                user = lock_user(session, user_id)
                if user is None:
                    raise NotFoundError(f"User {user_id} not found", code=USER_NOT_FOUND, detail={"user_id": user_id})
                if get_member(session, project.id, user.id) is not None:
                    raise ConflictError(
                        "User is already a member of this project",
                        code=ALREADY_MEMBER,
                        detail={"user_id": user.id, "project_id": project.id},
                    )
                if role == ProjectRole.LEADER:
                    self._check_leader(project, user)

                member = crud.create(
                    session,
                    ProjectMember,
                    project_id=project.id,
                    user_id=user.id,
                    project_role=role,
                    joined_at=now,
                )
                outbox.publish(
                    project_channel(project.id),
                    "member:added",
                    {"memberId": member.id, "memberUserId": user.id, "projectRole": str(role)},
                )
                if user.id != actor.id:
                    outbox.notify(
                        [user.id],
                        NotificationKind.PROJECT_INVITE,
                        None,
                        project.name,
                        actor.name,
                        link=f"/projects/{project.id}",
                    )
        except DomainError as exc:
            logger.info("project.member.rejected project_id=%s user_id=%s code=%s", project_id, user_id, exc.code)
            raise

        logger.info("project.member.added project_id=%s user_id=%s role=%s", project.id, user.id, role)
        self._deliver(outbox)
        return member

    def _check_leader(self, project: Project, user: User) -> None:
        session = self.session
        if user.global_role != GlobalRole.LEADER:
            raise ValidationError(
                f"{user.name} cannot be project LEADER: only users with the global LEADER role can lead a project",
                code=INVALID_LEADER,
                detail={"user_id": user.id},
            )
        current = session.exec(
            select(ProjectMember)
            .where(ProjectMember.project_id == project.id)
            .where(ProjectMember.project_role == ProjectRole.LEADER)
        ).first()
        if current is not None:
            raise ConflictError(
                "Project already has a LEADER",
                code=LEADER_CONFLICT,
                detail={"project_id": project.id, "leader_id": current.user_id},
            )
        elsewhere = session.exec(
            select(ProjectMember)
            .where(ProjectMember.user_id == user.id)
            .where(ProjectMember.project_role == ProjectRole.LEADER)
        ).first()
        if elsewhere is not None:
            raise ConflictError(
                f"{user.name} already leads another project; a user can lead one project at a time",
                code=LEADER_CONFLICT,
                detail={"user_id": user.id, "project_id": elsewhere.project_id},
            )

    def set_completed(
        self,
        project_id: int,
        is_completed: bool,
        actor: User,
        *,
        capabilities: ProjectCapabilities | None = None,
        now: datetime | None = None,
    ) -> Project:
        now = now or utcnow()
        session = self.session
        outbox = Outbox(actor_id=actor.id)

        with atomic(session):
            project = crud.get_for_update(session, Project, project_id)
            if project is None:
                project = require_project(session, project_id)
            caps = capabilities or capabilities_for(session, actor, project)
            caps.require(caps.can_complete_project, "Only the project creator or admins can complete a project")
            project.is_completed = is_completed
            project.completed_at = now if is_completed else None
            crud.save(session, project)
            outbox.publish(
                project_channel(project.id),
                "project:updated",
                {"projectId": project.id, "isCompleted": project.is_completed},
            )

        logger.info("project.completion.updated project_id=%s is_completed=%s", project.id, is_completed)
        self._deliver(outbox)
        return project
