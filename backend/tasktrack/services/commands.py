"""Typed card mutations.

A card update is a list of commands; each variant carries only what its
preconditions need.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from tasktrack.core.errors import ValidationError
from tasktrack.models.cards import CardPriority, CardStatus
from tasktrack.schemas.cards import CardUpdate

EDITABLE_FIELDS = frozenset({"title", "description", "priority", "due_date", "deadline"})
REQUIRED_FIELDS = frozenset({"title", "priority"})


@dataclass(frozen=True, slots=True)
class StatusChange:
    status: CardStatus


@dataclass(frozen=True, slots=True)
class AssigneeChange:
    assignee_id: int | None
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class FieldEdit:
    changes: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        unknown = set(self.changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be edited: {', '.join(sorted(unknown))}",
                detail={"fields": sorted(unknown)},
            )
        nulled = sorted(name for name in REQUIRED_FIELDS if name in self.changes and self.changes[name] is None)
        if nulled:
            raise ValidationError(f"Fields cannot be cleared: {', '.join(nulled)}", detail={"fields": nulled})
        if "title" in self.changes and not (self.changes["title"] or "").strip():
            raise ValidationError("title must not be empty", detail={"fields": ["title"]})
        priority = self.changes.get("priority")
        if priority is not None and priority not in set(CardPriority):
            raise ValidationError(f"Unknown priority {priority!r}", detail={"fields": ["priority"]})

    @property
    def priority(self) -> str | None:
        return self.changes.get("priority")

    @property
    def due_date(self) -> datetime | None:
        return self.changes.get("due_date")


CardCommand = StatusChange | AssigneeChange | FieldEdit


def commands_from_update(payload: CardUpdate) -> list[CardCommand]:
    provided = payload.model_fields_set
    commands: list[CardCommand] = []

    edits = {name: getattr(payload, name) for name in EDITABLE_FIELDS if name in provided}
    if edits:
        commands.append(FieldEdit(edits))
    if "assignee_id" in provided:
        commands.append(AssigneeChange(payload.assignee_id, payload.reason))
    if "status" in provided:
        if payload.status is None:
            raise ValidationError("status must not be null", detail={"fields": ["status"]})
        commands.append(StatusChange(payload.status))
    if not commands:
        raise ValidationError("Nothing to update")
    return commands
