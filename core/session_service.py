# core/session_service.py
"""
Session validation with a read-through cache.

    credential -> cache hit?  -> cached result
               -> provider    -> local user lookup -> cache -> result

Only successful validations are cached, and never past the credential's own
expiry. Failures of the cache are invisible here (see `SessionCache`);
failures of the provider or the database make the validation fail with
INTERNAL_ERROR, never succeed.
"""
import threading
import time
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from db_models.user import User
from core.exceptions import ErrorKind
from core.logging import get_logger
from core.principal import AuthenticatedUser
from core.security import CredentialError, JWTIdentityProvider
from core.session_cache import SessionCache

logger = get_logger(__name__)

DEGRADED_RTT_MS = 100.0


class ValidationResult(BaseModel):
    valid: bool
    error: ErrorKind | None = None
    message: str | None = None
    user_id: str | None = None
    email: str | None = None
    role: str | None = None
    expires_at: datetime | None = None
    cached: bool = False
    user: AuthenticatedUser | None = None

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "ValidationResult":
        return cls(valid=False, error=kind, message=message)

    @classmethod
    def success(cls, user: AuthenticatedUser, expires_at: datetime | None = None) -> "ValidationResult":
        return cls(
            valid=True,
            user_id=user.external_id,
            email=user.email,
            role=user.full_role.value,
            expires_at=expires_at,
            user=user,
        )

    def seconds_left(self, now: datetime | None = None) -> float | None:
        if self.expires_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (self.expires_at - now).total_seconds()


class ValidationMetrics:
    """Counters for one service instance. Safe to update from several threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.total_requests = 0
            self.cache_hits = 0
            self.cache_misses = 0
            self.provider_calls = 0
            self.missing_credentials = 0
            self.total_response_time_ms = 0.0

    def record(self, *, cache_hit: bool, provider_called: bool, elapsed_ms: float) -> None:
        with self._lock:
            self.total_requests += 1
            if cache_hit:
                self.cache_hits += 1
            else:
                self.cache_misses += 1
            if provider_called:
                self.provider_calls += 1
            self.total_response_time_ms += elapsed_ms

    def record_missing_credential(self) -> None:
        # Kept out of total_requests: the cache was never asked
        with self._lock:
            self.missing_credentials += 1

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            total = self.total_requests
            return {
                "total_requests": total,
                "cache_hits": self.cache_hits,
                "cache_misses": self.cache_misses,
                "provider_calls": self.provider_calls,
                "missing_credentials": self.missing_credentials,
                "cache_hit_rate": round(self.cache_hits / total * 100, 2) if total else 0.0,
                "average_response_time_ms": round(self.total_response_time_ms / total, 2) if total else 0.0,
            }


class SessionValidationService:
    def __init__(
        self,
        cache: SessionCache,
        identity_provider: JWTIdentityProvider,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_seconds: int | None = None,
    ):
        self.cache = cache
        self.identity_provider = identity_provider
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds or settings.SESSION_CACHE_TTL_SECONDS
        self._metrics = ValidationMetrics()

    async def validate(self, credential: str | None) -> ValidationResult:
        """
        Validate a session credential.

        Never raises: every outcome is a ValidationResult.
        """
        if not credential:
            self._metrics.record_missing_credential()
            return ValidationResult.failure(ErrorKind.NO_CREDENTIAL, "No session credential provided")

        started = time.perf_counter()
        cache_hit = False
        provider_called = False
        try:
            key = self.cache.key_for(credential)
            cached = await self._cached_result(key)
            if cached is not None:
                cache_hit = True
                return cached

            provider_called = True
            result = await self._validate_uncached(credential)
            if result.valid:
                await self._store(key, result)
            return result
        finally:
            self._metrics.record(
                cache_hit=cache_hit,
                provider_called=provider_called,
                elapsed_ms=(time.perf_counter() - started) * 1000,
            )

    async def _cached_result(self, key: str) -> ValidationResult | None:
        cached = await self.cache.get(key)
        if cached is None:
            return None
        try:
            result = ValidationResult.model_validate(cached)
        except ValidationError:
            logger.warning("Discarding unreadable session cache entry")
            await self.cache.invalidate(key)
            return None

        left = result.seconds_left()
        if left is not None and left <= 0:
            # The provider reports the expiry from here on
            await self.cache.invalidate(key)
            return None
        return result.model_copy(update={"cached": True})

    async def _store(self, key: str, result: ValidationResult) -> None:
        ttl = self.ttl_seconds
        left = result.seconds_left()
        if left is not None:
            ttl = min(ttl, int(left))
        if ttl <= 0:
            return
        await self.cache.set(
            key,
            result.model_dump(mode="json"),
            ttl_seconds=ttl,
            owner_id=result.user_id,
        )

    async def _validate_uncached(self, credential: str) -> ValidationResult:
        try:
            verified = await self.identity_provider.verify_credential(credential)
        except CredentialError as exc:
            return ValidationResult.failure(exc.kind, exc.message)
        except Exception:
            logger.exception("Identity provider failed during session validation")
            return ValidationResult.failure(ErrorKind.INTERNAL_ERROR, "Authentication service unavailable")

        try:
            async with self.session_factory() as db:
                result = await db.execute(select(User).where(User.external_id == verified.subject_id))
                user = result.scalar_one_or_none()
                if user is None:
                    return ValidationResult.failure(ErrorKind.NOT_FOUND, "User not found in system")
                if user.is_blocked():
                    return ValidationResult.failure(ErrorKind.SUSPENDED, "Account suspended or deleted")
                principal = AuthenticatedUser.from_user(user)
        except SQLAlchemyError:
            logger.exception("User lookup failed during session validation")
            return ValidationResult.failure(ErrorKind.INTERNAL_ERROR, "Authentication service unavailable")
        except (ValidationError, ValueError):
            # Unknown role or status, or grant JSON that no longer parses
            logger.exception("Stored user record is unreadable", extra={"external_id": verified.subject_id})
            return ValidationResult.failure(ErrorKind.INTERNAL_ERROR, "User record could not be loaded")

        return ValidationResult.success(principal, expires_at=verified.expires_at)

    async def invalidate(self, credential: str) -> bool:
        if not credential:
            return False
        return await self.cache.invalidate(self.cache.key_for(credential))

    async def invalidate_user(self, external_id: str) -> int:
        return await self.cache.invalidate_user(external_id)

    def metrics(self) -> dict[str, Any]:
        return self._metrics.snapshot()

    def reset_metrics(self) -> None:
        self._metrics.reset()

    async def health_check(self) -> dict[str, Any]:
        reachable, rtt_ms = await self.cache.ping()
        if not reachable:
            status = "unhealthy"
        elif rtt_ms > DEGRADED_RTT_MS:
            status = "degraded"
        else:
            status = "healthy"
        return {
            "status": status,
            "cache_reachable": reachable,
            "cache_response_time_ms": round(rtt_ms, 2),
            "metrics": self.metrics(),
        }
