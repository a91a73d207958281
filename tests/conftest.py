import os

# Settings are chosen at import time; this must run before the app is imported.
os.environ["MODE"] = "test"

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Import the app and DB helpers from the project
from main import app as fastapi_app
import db as project_db
import db_models  # ensure models are imported
from db_base import Base
from db_models.user import FullRole, User, UserStatus
from core.deps import get_session_service
from core.permissions import default_collection_permissions
from core.principal import CollectionGrant, dump_grants
from core.security import generate_external_id, get_password_hash
from core.session_cache import SessionCache
from core.session_service import SessionValidationService
from doubles import CountingIdentityProvider, FakeRedis

TEST_SECRET_KEY = "test-secret-key"
DEFAULT_PASSWORD = "correct-horse-battery"


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine():
    # Fresh in-memory database per test
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def identity_provider():
    return CountingIdentityProvider(secret_key=TEST_SECRET_KEY)


@pytest.fixture
def session_cache(fake_redis):
    return SessionCache(fake_redis, ttl_seconds=21600)


@pytest.fixture
def session_service(session_cache, identity_provider, session_factory):
    return SessionValidationService(
        cache=session_cache,
        identity_provider=identity_provider,
        session_factory=session_factory,
        ttl_seconds=21600,
    )


@pytest.fixture
async def async_client(session_factory, session_service):
    # Override the get_session dependency to create a fresh session for each request
    async def override_get_session():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[project_db.get_session] = override_get_session
    fastapi_app.dependency_overrides[get_session_service] = lambda: session_service

    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://testserver") as ac:
        yield ac

    # Clean up
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    """Factory inserting a user with the role's default grants."""

    async def _make_user(
        email: str,
        full_role: FullRole = FullRole.USER,
        status: UserStatus = UserStatus.ACTIVE,
        password: str = DEFAULT_PASSWORD,
        overrides: list[CollectionGrant] | None = None,
        **fields,
    ) -> User:
        user = User(
            external_id=generate_external_id(),
            email=email,
            hashed_password=get_password_hash(password),
            display_name=fields.pop("display_name", email.split("@")[0]),
            full_role=full_role.value,
            status=status.value,
            collection_permissions=dump_grants(default_collection_permissions(full_role)),
            permission_overrides=dump_grants(overrides or []),
            login_attempts=fields.pop("login_attempts", 0),
            **fields,
        )
        async with session_factory() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers(identity_provider):
    """Authorization headers carrying a fresh session credential for `user`."""

    def _auth_headers(user: User) -> dict[str, str]:
        token = identity_provider.issue_session_token(
            user.external_id,
            claims={"email": user.email, "role": user.full_role},
        )
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture
async def super_admin(make_user):
    return await make_user("root@test.com", FullRole.SUPER_ADMIN)


@pytest.fixture
async def admin(make_user):
    return await make_user("admin@test.com", FullRole.ADMIN)
