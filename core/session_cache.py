# core/session_cache.py
"""
Redis-backed cache for session validation results.

The cache only saves identity-provider round trips. Every Redis failure is
logged and turned into a miss (reads) or a no-op returning False (writes),
so callers never see it.
"""
import hashlib
import json
import time
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from config import settings
from core.logging import get_logger

logger = get_logger(__name__)

SESSION_KEY_PREFIX = "session:verified:"
USER_INDEX_PREFIX = "session:user:"

# Errors that mean "cache unavailable or entry unusable"
CACHE_ERRORS = (RedisError, OSError, ValueError)


def create_redis_client(url: str | None = None) -> redis.Redis:
    """Build the Redis client with the command/connect timeouts from settings."""
    return redis.from_url(
        url or settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.CACHE_COMMAND_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.CACHE_CONNECT_TIMEOUT_SECONDS,
    )


class SessionCache:
    """TTL key/value store for validated sessions, keyed by credential hash."""

    def __init__(self, client: redis.Redis, ttl_seconds: int | None = None):
        self._client = client
        self.ttl_seconds = ttl_seconds or settings.SESSION_CACHE_TTL_SECONDS

    @classmethod
    def from_url(cls, url: str | None = None, ttl_seconds: int | None = None) -> "SessionCache":
        return cls(create_redis_client(url), ttl_seconds=ttl_seconds)

    @staticmethod
    def key_for(credential: str) -> str:
        """Stable cache key; the credential itself is a bearer secret and never stored as a key."""
        digest = hashlib.sha256(credential.encode("utf-8")).hexdigest()
        return f"{SESSION_KEY_PREFIX}{digest}"

    @staticmethod
    def user_index_key(external_id: str) -> str:
        return f"{USER_INDEX_PREFIX}{external_id}"

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            raw = await self._client.get(key)
            if raw is None:
                return None
            value = json.loads(raw)
        except CACHE_ERRORS as exc:
            logger.warning("Session cache read failed", extra={"error": str(exc)})
            return None
        if not isinstance(value, dict):
            return None
        return value

    async def set(
        self,
        key: str,
        value: dict[str, Any],
        ttl_seconds: int | None = None,
        owner_id: str | None = None,
    ) -> bool:
        """
        Store `value` under `key` for the given TTL.

        When `owner_id` is given the key is also added to that user's index so
        `invalidate_user` can find it later.
        """
        ttl = ttl_seconds or self.ttl_seconds
        try:
            serialized = json.dumps(value, default=str)
            await self._client.setex(key, ttl, serialized)
            if owner_id:
                index_key = self.user_index_key(owner_id)
                await self._client.sadd(index_key, key)
                # Never shorter than the longest entry it may still list
                await self._client.expire(index_key, max(ttl, self.ttl_seconds))
        except CACHE_ERRORS as exc:
            logger.warning("Session cache write failed", extra={"error": str(exc)})
            return False
        return True

    async def invalidate(self, key: str) -> bool:
        try:
            await self._client.delete(key)
        except CACHE_ERRORS as exc:
            logger.warning("Session cache delete failed", extra={"error": str(exc)})
            return False
        return True

    async def invalidate_user(self, external_id: str) -> int:
        """Drop every cached session of one user. Returns the number of keys removed."""
        index_key = self.user_index_key(external_id)
        try:
            keys = await self._client.smembers(index_key)
            removed = 0
            if keys:
                removed = await self._client.delete(*keys)
            await self._client.delete(index_key)
        except CACHE_ERRORS as exc:
            logger.warning(
                "Session cache user invalidation failed",
                extra={"error": str(exc), "user_id": external_id},
            )
            return 0
        logger.info("Invalidated cached sessions", extra={"user_id": external_id, "count": removed})
        return removed

    async def ping(self) -> tuple[bool, float]:
        """Reachability and round-trip time in milliseconds."""
        started = time.perf_counter()
        try:
            reachable = bool(await self._client.ping())
        except CACHE_ERRORS as exc:
            logger.warning("Session cache ping failed", extra={"error": str(exc)})
            reachable = False
        return reachable, (time.perf_counter() - started) * 1000

    async def aclose(self) -> None:
        await self._client.aclose()
