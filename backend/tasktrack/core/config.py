"""Runtime settings loaded from the environment (and an optional ``.env`` file)."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: str = "dev"
    database_url: str = "sqlite:///./tasktrack.db"
    db_echo: bool = False
    log_level: str = "INFO"

    # Comma separated list; "*" allows everything.
    cors_allow_origins: str = ""

    # External realtime store (live-state channels). Empty -> in-process broadcaster.
    realtime_url: str = ""
    realtime_token: str = ""

    # Optional push delivery for notifications.
    push_gateway_url: str = ""
    push_gateway_token: str = ""

    # Legacy clients read TimeLog.duration_minutes as seconds.
    time_log_duration_unit: Literal["seconds", "minutes"] = "seconds"

    min_work_hours_per_day: float = 4.0
    max_work_hours_per_day: float = 12.0
    enable_work_hours_limit: bool = False

    def cors_origins(self) -> list[str]:
        return [item.strip() for item in self.cors_allow_origins.split(",") if item.strip()]


settings = Settings()
