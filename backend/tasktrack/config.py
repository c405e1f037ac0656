from __future__ import annotations

import os
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="TASKTRACK_", case_sensitive=False)
    """Application runtime configuration."""

    app_name: str = "TaskTrack"
    environment: str = "development"
    host: str = "127.0.0.1"
    port: int = 8080

    sqlite_path: Path = Path("./data/tasktrack.db")

    timezone: str = os.getenv("TZ", "Europe/Berlin")

    default_timer_description: str = "Working on task"
    default_approver: str = "Project Manager"

    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return str(value).strip().upper() or "INFO"


settings = Settings()

settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
