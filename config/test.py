from __future__ import annotations

from pydantic_settings import SettingsConfigDict

from .base import BaseAppSettings


class TestSettings(BaseAppSettings):
    """Settings for the pytest suite: in-memory SQLite, no env file."""

    DATABASE_URL: str | None = "sqlite+aiosqlite://"
    APP_ENV: str = "test"
    SECRET_KEY: str | None = "test-secret-key"
    DEBUG: bool = False
    LOG_LEVEL: str = "WARNING"
    SESSION_COOKIE_SECURE: bool = False

    model_config = SettingsConfigDict(env_file=None)
