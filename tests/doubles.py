"""Test doubles for the session cache and the identity provider."""
from redis.exceptions import ConnectionError as RedisConnectionError

from core.security import JWTIdentityProvider


class FakeRedis:
    """In-memory stand-in for the redis.asyncio commands SessionCache uses."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.sets: dict[str, set[str]] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            if self.sets.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def sadd(self, key, *members):
        members_set = self.sets.setdefault(key, set())
        before = len(members_set)
        members_set.update(members)
        return len(members_set) - before

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    async def expire(self, key, ttl):
        self.ttls[key] = ttl
        return True

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True


class UnreachableRedis:
    """Every command fails the way a dead Redis server does."""

    async def _fail(self, *args, **kwargs):
        raise RedisConnectionError("Connection refused")

    get = setex = delete = sadd = smembers = expire = ping = _fail

    async def aclose(self):
        pass


class CountingIdentityProvider(JWTIdentityProvider):
    """Real JWT provider that counts verification round trips."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.verify_calls = 0

    async def verify_credential(self, token):
        self.verify_calls += 1
        return await super().verify_credential(token)


class FailingIdentityProvider(JWTIdentityProvider):
    """Provider whose verification blows up with an unexpected error."""

    async def verify_credential(self, token):
        raise RuntimeError("identity provider unavailable")
