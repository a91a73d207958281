import pytest
from sqlalchemy import select

from config import settings
from db_models.audit_log import AuditAction, AuditLog
from db_models.user import FullRole
from core.permissions import CONTENT_COLLECTIONS
from core.principal import Collection, CollectionGrant, SubRole

NON_ADMIN_ROLES = [r for r in FullRole if r not in (FullRole.ADMIN, FullRole.SUPER_ADMIN)]


async def denied_attempts(db_session) -> list[AuditLog]:
    result = await db_session.execute(
        select(AuditLog).where(AuditLog.action == AuditAction.UNAUTHORIZED_ACCESS_ATTEMPT.value)
    )
    return list(result.scalars().all())


@pytest.mark.anyio
async def test_every_content_collection_is_mounted(async_client, super_admin, auth_headers):
    headers = auth_headers(super_admin)
    for collection in CONTENT_COLLECTIONS:
        resp = await async_client.get(f"/api/v1/{collection.value}", headers=headers)
        assert resp.status_code == 200, collection
        assert resp.json() == []


@pytest.mark.anyio
async def test_guard_without_credential(async_client):
    resp = await async_client.get("/api/v1/projects")
    assert resp.status_code == 401
    body = resp.json()
    assert body["valid"] is False
    assert body["error"] == "NO_CREDENTIAL"
    assert resp.headers["www-authenticate"] == "Bearer"


@pytest.mark.anyio
async def test_guard_with_malformed_credential(async_client):
    resp = await async_client.get("/api/v1/projects", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "MALFORMED"


@pytest.mark.anyio
async def test_guard_reads_the_session_cookie(async_client, make_user, identity_provider):
    agent = await make_user("agent@test.com", FullRole.AGENT)
    async_client.cookies.set(settings.SESSION_COOKIE_NAME, identity_provider.issue_session_token(agent.external_id))

    resp = await async_client.get("/api/v1/properties")
    assert resp.status_code == 200, resp.text


@pytest.mark.anyio
async def test_collection_outside_role_defaults_is_denied(async_client, make_user, auth_headers, db_session):
    marketing = await make_user("marketing@test.com", FullRole.MARKETING)
    headers = auth_headers(marketing)

    assert (await async_client.get("/api/v1/blogs", headers=headers)).status_code == 200

    resp = await async_client.get("/api/v1/projects", headers=headers)
    assert resp.status_code == 403
    body = resp.json()
    assert body["error"] == "FORBIDDEN"
    assert "projects:view" in body["message"]
    assert "marketing" in body["message"]

    attempts = await denied_attempts(db_session)
    assert len(attempts) == 1
    assert attempts[0].user_id == marketing.external_id
    assert attempts[0].resource == "projects:view"
    assert attempts[0].success is False


@pytest.mark.anyio
async def test_admin_with_restricted_collection_keeps_system_capabilities(
    async_client, make_user, auth_headers, db_session
):
    """A CONTRIBUTOR override on BLOGS blocks deletes there; user management still works."""
    admin = await make_user(
        "restricted-admin@test.com",
        FullRole.ADMIN,
        overrides=[CollectionGrant(collection=Collection.BLOGS, sub_role=SubRole.CONTRIBUTOR)],
    )
    headers = auth_headers(admin)

    resp = await async_client.delete("/api/v1/blogs/spring-launch", headers=headers)
    assert resp.status_code == 403
    assert resp.json()["error"] == "FORBIDDEN"

    attempts = await denied_attempts(db_session)
    assert [a.resource for a in attempts] == ["blogs:delete"]
    assert attempts[0].details == {"method": "DELETE", "path": "/api/v1/blogs/spring-launch"}

    # Still allowed: editing blogs, deleting elsewhere, managing users
    resp = await async_client.post(
        "/api/v1/blogs", json={"slug": "spring-launch", "title": "Spring launch"}, headers=headers
    )
    assert resp.status_code == 201, resp.text
    assert (await async_client.get("/api/v1/users", headers=headers)).status_code == 200


@pytest.mark.anyio
@pytest.mark.parametrize("full_role", NON_ADMIN_ROLES)
async def test_collection_admin_everywhere_grants_no_system_capability(
    async_client, make_user, auth_headers, full_role
):
    everything = [CollectionGrant(collection=c, sub_role=SubRole.COLLECTION_ADMIN) for c in Collection]
    user = await make_user(f"{full_role.value}@test.com", full_role, overrides=everything)
    headers = auth_headers(user)

    # Collection-level access is real
    assert (await async_client.get("/api/v1/malls", headers=headers)).status_code == 200

    for path in ("/api/v1/users", "/api/v1/users/stats", "/api/v1/audit-logs", "/api/v1/auth/session-metrics"):
        resp = await async_client.get(path, headers=headers)
        assert resp.status_code == 403, path


@pytest.mark.anyio
async def test_admin_lacks_super_admin_capabilities(async_client, admin, super_admin, auth_headers):
    resp = await async_client.get("/api/v1/audit-logs", headers=auth_headers(admin))
    assert resp.status_code == 403

    resp = await async_client.get("/api/v1/audit-logs", headers=auth_headers(super_admin))
    assert resp.status_code == 200, resp.text


@pytest.mark.anyio
async def test_guard_uses_cached_validation(async_client, make_user, auth_headers, identity_provider):
    agent = await make_user("agent@test.com", FullRole.AGENT)
    headers = auth_headers(agent)

    for _ in range(3):
        assert (await async_client.get("/api/v1/projects", headers=headers)).status_code == 200

    assert identity_provider.verify_calls == 1


@pytest.mark.anyio
async def test_override_downgrade_applies_to_next_request(async_client, super_admin, make_user, auth_headers):
    sales = await make_user("sales@test.com", FullRole.SALES)
    sales_headers = auth_headers(sales)
    assert (await async_client.post(
        "/api/v1/hotels", json={"slug": "marina-tower", "title": "Marina Tower"}, headers=sales_headers
    )).status_code == 201

    resp = await async_client.put(
        f"/api/v1/users/{sales.external_id}/permissions",
        json={"permission_overrides": [{"collection": "hotels", "sub_role": "observer"}]},
        headers=auth_headers(super_admin),
    )
    assert resp.status_code == 200, resp.text

    # The cached snapshot was dropped, so the new override is enforced at once
    resp = await async_client.post(
        "/api/v1/hotels", json={"slug": "palm-resort", "title": "Palm Resort"}, headers=sales_headers
    )
    assert resp.status_code == 403
    assert (await async_client.get("/api/v1/hotels", headers=sales_headers)).status_code == 200
