from __future__ import annotations

from fastapi import APIRouter, status
from sqlmodel import Session

from tasktrack.api.deps import ACTOR_DEP, BROADCASTER_DEP, NOTIFIER_DEP, SESSION_DEP
from tasktrack.integrations.broadcaster import EventBroadcaster
from tasktrack.integrations.notify import Notifier
from tasktrack.models.users import User
from tasktrack.schemas.cards import AssignmentRead
from tasktrack.schemas.projects import (
    ProjectCompletionUpdate,
    ProjectMemberCreate,
    ProjectMemberRead,
    ProjectRead,
)
from tasktrack.services.assignment_registry import AssignmentRegistry
from tasktrack.services.membership import ProjectMembership

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("/{project_id}/members", response_model=ProjectMemberRead, status_code=status.HTTP_201_CREATED)
def add_project_member(
    project_id: int,
    payload: ProjectMemberCreate,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
    broadcaster: EventBroadcaster = BROADCASTER_DEP,
    notifier: Notifier = NOTIFIER_DEP,
) -> ProjectMemberRead:
    membership = ProjectMembership(session, broadcaster=broadcaster, notifier=notifier)
    member = membership.add_member(project_id, payload.user_id, payload.project_role, actor)
    return ProjectMemberRead.model_validate(member)


@router.patch("/{project_id}/complete", response_model=ProjectRead)
def set_project_completed(
    project_id: int,
    payload: ProjectCompletionUpdate,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
    broadcaster: EventBroadcaster = BROADCASTER_DEP,
) -> ProjectRead:
    project = ProjectMembership(session, broadcaster=broadcaster).set_completed(
        project_id, payload.is_completed, actor
    )
    return ProjectRead.model_validate(project)


@router.get("/{project_id}/assignment-history", response_model=list[AssignmentRead])
def project_assignment_history(
    project_id: int,
    session: Session = SESSION_DEP,
    actor: User = ACTOR_DEP,
) -> list[AssignmentRead]:
    rows = AssignmentRegistry(session).list_project_assignments(project_id)
    return [AssignmentRead.model_validate(row) for row in rows]
