from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from tasktrack.core.time import utcnow


class ApprovalStatus(StrEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class OvertimeApproval(SQLModel, table=True):
    __tablename__ = "overtime_approvals"
    __table_args__ = (
        Index("ix_overtime_approvals_card_requester_status", "card_id", "requested_by", "status"),
    )

    id: int | None = Field(default=None, primary_key=True)
    card_id: int = Field(foreign_key="cards.id")
    requested_by: int = Field(foreign_key="users.id")
    reason: str
    days_overdue: int
    status: str = Field(default=ApprovalStatus.PENDING)  # PENDING | APPROVED | REJECTED
    requested_at: datetime = Field(default_factory=utcnow)

    approver_id: int | None = Field(default=None, foreign_key="users.id")
    approver_notes: str | None = None
    responded_at: datetime | None = None
