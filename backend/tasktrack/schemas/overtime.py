from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlmodel import SQLModel


class ApprovalAction(StrEnum):
    APPROVE = "approve"
    REJECT = "reject"


class OvertimeRequestCreate(SQLModel):
    card_id: int
    reason: str


class OvertimeResolve(SQLModel):
    action: ApprovalAction
    approver_notes: str | None = None


class OvertimeApprovalRead(SQLModel):
    id: int
    card_id: int
    requested_by: int
    reason: str
    days_overdue: int
    status: str
    requested_at: datetime
    approver_id: int | None = None
    approver_notes: str | None = None
    responded_at: datetime | None = None
