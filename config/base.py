"""Settings shared by every deployment mode."""
from __future__ import annotations

from pydantic_settings import BaseSettings


class BaseAppSettings(BaseSettings):
    APP_ENV: str = "local"
    SECRET_KEY: str | None = None
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Session cache (Redis)
    REDIS_URL: str = "redis://localhost:6379/0"
    SESSION_CACHE_TTL_SECONDS: int = 60 * 60 * 6  # 6 hours
    CACHE_COMMAND_TIMEOUT_SECONDS: float = 5.0
    CACHE_CONNECT_TIMEOUT_SECONDS: float = 10.0

    # Session credential
    SESSION_COOKIE_NAME: str = "__session"
    SESSION_COOKIE_SECURE: bool = True
    SESSION_EXPIRES_DAYS: int = 1
    SESSION_REMEMBER_DAYS: int = 5

    # Login flow
    LOGIN_TIMEOUT_SECONDS: float = 25.0
    MAX_LOGIN_ATTEMPTS: int = 5
    LOCKOUT_MINUTES: int = 15
