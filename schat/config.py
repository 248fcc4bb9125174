"""Runtime configuration loaded from the environment (``SCHAT_*``) or ``.env``."""
from __future__ import annotations

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "SChat"
    log_level: str = "INFO"

    # Database
    db_url: str = "sqlite://database.db"
    generate_schemas: bool = True

    # Uploads (local disk only)
    uploads_dir: str = "uploads"
    max_upload_bytes: int = 5 * 1024 * 1024

    # Seconds before a relayed "is typing" indicator is cleared; 0 disables
    typing_timeout: float = Field(default=3.0, ge=0)

    cors_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_prefix="SCHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


__all__ = ["Settings"]
