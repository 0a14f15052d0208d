from __future__ import annotations

from datetime import datetime

from sqlalchemy import Index
from sqlmodel import Field, SQLModel


class TimeLog(SQLModel, table=True):
    __tablename__ = "time_logs"
    __table_args__ = (Index("ix_time_logs_user_open", "user_id", "end_time"),)

    id: int | None = Field(default=None, primary_key=True)
    card_id: int = Field(foreign_key="cards.id", index=True)
    user_id: int = Field(foreign_key="users.id")

    start_time: datetime
    end_time: datetime | None = None  # None while the timer is running
    # Seconds unless settings.time_log_duration_unit == "minutes".
    duration_minutes: int | None = None
    notes: str | None = None
