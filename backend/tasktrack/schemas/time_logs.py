from __future__ import annotations

from datetime import datetime
from typing import Literal

from sqlmodel import SQLModel


class TimeLogRead(SQLModel):
    id: int
    card_id: int
    user_id: int
    start_time: datetime
    end_time: datetime | None = None
    duration_minutes: int | None = None
    notes: str | None = None


class WorkHoursStatus(SQLModel):
    hours_worked: float
    min_hours: float
    max_hours: float
    enable_limit: bool
    status: Literal["ok", "warning", "exceeded"]
    message: str
    has_active_timer: bool
    active_timer_start_time: datetime | None = None
    can_start_timer: bool
    remaining_hours: float
    needed_hours: float
