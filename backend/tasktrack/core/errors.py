"""Domain error taxonomy.

Every precondition failure raised by the engine is a ``DomainError`` carrying a
stable ``code``, a human readable ``message`` and optional structured ``detail``.
The API layer renders them as ``{"code", "message", "detail"}`` with the
family's HTTP status.
"""

from __future__ import annotations

from typing import Any

from fastapi import status


class DomainError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_code: str = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.detail = detail or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "detail": self.detail}


class AuthorizationError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "NOT_AUTHORIZED"


class ValidationError(DomainError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "VALIDATION_ERROR"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class StateError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "INVALID_STATE"


# Stable codes, grouped by family.
NOT_AUTHORIZED = "NOT_AUTHORIZED"
NOT_A_PROJECT_MEMBER = "NOT_A_PROJECT_MEMBER"
NOT_OWNER = "NOT_OWNER"
NOT_ASSIGNEE = "NOT_ASSIGNEE"

ASSIGNEE_NOT_MEMBER = "ASSIGNEE_NOT_MEMBER"
ASSIGNEE_IS_OBSERVER = "ASSIGNEE_IS_OBSERVER"
INVALID_LEADER = "INVALID_LEADER"

ASSIGNEE_HAS_UNFINISHED_WORK = "ASSIGNEE_HAS_UNFINISHED_WORK"
ASSIGNEE_ALREADY_ACTIVE = "ASSIGNEE_ALREADY_ACTIVE"
ACTIVE_TIMER_EXISTS = "ACTIVE_TIMER_EXISTS"
ACTIVE_CARD_IN_PROJECT = "ACTIVE_CARD_IN_PROJECT"
ASSIGNED_CARD_IN_PROJECT = "ASSIGNED_CARD_IN_PROJECT"
WORK_HOURS_EXCEEDED = "WORK_HOURS_EXCEEDED"
DUPLICATE_PENDING = "DUPLICATE_PENDING"
ALREADY_RESOLVED = "ALREADY_RESOLVED"
LEADER_CONFLICT = "LEADER_CONFLICT"
ALREADY_MEMBER = "ALREADY_MEMBER"

CARD_NOT_FOUND = "CARD_NOT_FOUND"
TIME_LOG_NOT_FOUND = "TIME_LOG_NOT_FOUND"
APPROVAL_NOT_FOUND = "APPROVAL_NOT_FOUND"
PROJECT_NOT_FOUND = "PROJECT_NOT_FOUND"
USER_NOT_FOUND = "USER_NOT_FOUND"

NO_TIME_LOGGED = "NO_TIME_LOGGED"
CARD_ALREADY_DONE = "CARD_ALREADY_DONE"
CARD_NOT_DONE = "CARD_NOT_DONE"
ALREADY_STOPPED = "ALREADY_STOPPED"
NO_DEADLINE = "NO_DEADLINE"
NOT_OVERDUE = "NOT_OVERDUE"


def card_not_found(card_id: int) -> NotFoundError:
    return NotFoundError(f"Card {card_id} not found", code=CARD_NOT_FOUND, detail={"card_id": card_id})


def project_not_found(project_id: int) -> NotFoundError:
    return NotFoundError(
        f"Project {project_id} not found",
        code=PROJECT_NOT_FOUND,
        detail={"project_id": project_id},
    )
