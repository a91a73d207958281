import json

import pytest

from core.session_cache import SESSION_KEY_PREFIX, SessionCache
from doubles import UnreachableRedis


def test_key_is_hashed_credential():
    key = SessionCache.key_for("secret-token")
    assert key.startswith(SESSION_KEY_PREFIX)
    assert "secret-token" not in key
    # SHA-256 hex digest
    assert len(key) == len(SESSION_KEY_PREFIX) + 64
    assert key == SessionCache.key_for("secret-token")
    assert key != SessionCache.key_for("secret-token2")


@pytest.mark.anyio
async def test_set_then_get(session_cache, fake_redis):
    key = session_cache.key_for("abc")
    assert await session_cache.set(key, {"valid": True, "user_id": "u1"})
    assert await session_cache.get(key) == {"valid": True, "user_id": "u1"}
    assert fake_redis.ttls[key] == 21600


@pytest.mark.anyio
async def test_missing_key_is_a_miss(session_cache):
    assert await session_cache.get(session_cache.key_for("nothing")) is None


@pytest.mark.anyio
async def test_undecodable_entry_is_a_miss(session_cache, fake_redis):
    key = session_cache.key_for("abc")
    fake_redis.store[key] = "{not json"
    assert await session_cache.get(key) is None


@pytest.mark.anyio
async def test_invalidate_user_drops_every_session_of_that_user(session_cache, fake_redis):
    first = session_cache.key_for("token-1")
    second = session_cache.key_for("token-2")
    other = session_cache.key_for("token-3")
    await session_cache.set(first, {"valid": True}, owner_id="u1")
    await session_cache.set(second, {"valid": True}, owner_id="u1")
    await session_cache.set(other, {"valid": True}, owner_id="u2")

    removed = await session_cache.invalidate_user("u1")

    assert removed == 2
    assert await session_cache.get(first) is None
    assert await session_cache.get(second) is None
    assert json.loads(fake_redis.store[other]) == {"valid": True}


@pytest.mark.anyio
async def test_short_entry_does_not_shorten_the_user_index(session_cache, fake_redis):
    await session_cache.set(session_cache.key_for("long"), {"valid": True}, owner_id="u1")
    await session_cache.set(session_cache.key_for("short"), {"valid": True}, ttl_seconds=30, owner_id="u1")

    assert fake_redis.ttls[session_cache.key_for("short")] == 30
    assert fake_redis.ttls[session_cache.user_index_key("u1")] == 21600


@pytest.mark.anyio
async def test_unreachable_cache_degrades_silently():
    cache = SessionCache(UnreachableRedis(), ttl_seconds=60)
    key = cache.key_for("abc")

    assert await cache.get(key) is None
    assert await cache.set(key, {"valid": True}, owner_id="u1") is False
    assert await cache.invalidate(key) is False
    assert await cache.invalidate_user("u1") == 0

    reachable, rtt_ms = await cache.ping()
    assert reachable is False
    assert rtt_ms >= 0


@pytest.mark.anyio
async def test_ping(session_cache):
    reachable, rtt_ms = await session_cache.ping()
    assert reachable is True
    assert rtt_ms >= 0
