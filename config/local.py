from __future__ import annotations

from pathlib import Path
from pydantic_settings import SettingsConfigDict

from .base import BaseAppSettings

ROOT = Path(__file__).resolve().parents[1]
ENV_FILE = ROOT / "env" / ".env.local"


class LocalSettings(BaseAppSettings):
    DATABASE_URL: str | None = None
    APP_ENV: str = "local"
    DEBUG: bool = True
    LOG_LEVEL: str = "DEBUG"
    SESSION_COOKIE_SECURE: bool = False

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
    )
