from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from db_models.audit_log import AuditAction, AuditLog
from db_models.permission_request import PermissionRequest
from db_models.user import FullRole, User
from core.principal import Collection, CollectionGrant, SubRole

BASE = "/api/v1/permission-requests"


def grant(collection: str, sub_role: str = "contributor") -> dict:
    return {"collection": collection, "sub_role": sub_role}


async def submit(async_client, headers, *grants, message="Covering the blog while the team is away", **fields):
    return await async_client.post(
        BASE,
        json={"requested_permissions": list(grants or [grant("blogs")]), "message": message, **fields},
        headers=headers,
    )


@pytest.fixture
async def agent(make_user):
    return await make_user("agent@test.com", FullRole.AGENT)


@pytest.mark.anyio
async def test_submit_request(async_client, agent, auth_headers, db_session):
    resp = await submit(async_client, auth_headers(agent), priority="high")
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["status"] == "pending"
    assert data["priority"] == "high"
    assert data["requested_by"] == agent.external_id
    assert data["requested_permissions"] == [grant("blogs")]

    logs = (await db_session.execute(
        select(AuditLog).where(AuditLog.action == AuditAction.PERMISSION_REQUESTED.value)
    )).scalars().all()
    assert [log.user_id for log in logs] == [agent.external_id]


@pytest.mark.anyio
async def test_grants_already_held_are_dropped(async_client, agent, auth_headers):
    # Agents are contributors on projects by default
    resp = await submit(async_client, auth_headers(agent), grant("projects"), grant("news", "observer"))
    assert resp.status_code == 201, resp.text
    assert resp.json()["requested_permissions"] == [grant("news", "observer")]

    resp = await submit(async_client, auth_headers(agent), grant("projects"))
    assert resp.status_code == 400
    assert resp.json()["message"] == "You already have all the requested permissions"


@pytest.mark.anyio
async def test_invalid_submissions(async_client, agent, super_admin, auth_headers):
    headers = auth_headers(agent)

    resp = await submit(async_client, headers, grant("blogs"), grant("blogs", "observer"))
    assert resp.status_code == 400

    past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    resp = await submit(async_client, headers, requested_expiry=past)
    assert resp.status_code == 400

    resp = await submit(async_client, headers, message="   ")
    assert resp.status_code == 422

    resp = await async_client.post(BASE, json={"requested_permissions": [], "message": "x"}, headers=headers)
    assert resp.status_code == 422

    resp = await submit(async_client, auth_headers(super_admin))
    assert resp.status_code == 400
    assert resp.json()["message"] == "Super administrators already have all permissions"


@pytest.mark.anyio
async def test_overlapping_pending_request(async_client, agent, auth_headers):
    headers = auth_headers(agent)
    assert (await submit(async_client, headers, grant("blogs"))).status_code == 201

    resp = await submit(async_client, headers, grant("blogs", "moderator"), grant("news"))
    assert resp.status_code == 409
    assert "blogs" in resp.json()["message"]


@pytest.mark.anyio
async def test_listing_is_scoped_to_the_caller(async_client, agent, admin, make_user, auth_headers):
    other = await make_user("marketer@test.com", FullRole.MARKETING)
    await submit(async_client, auth_headers(agent), grant("blogs"))
    await submit(async_client, auth_headers(other), grant("careers"))

    resp = await async_client.get(BASE, headers=auth_headers(agent))
    assert resp.status_code == 200
    data = resp.json()
    assert data["can_review"] is False
    assert data["stats"] is None
    assert [r["requested_by"] for r in data["requests"]] == [agent.external_id]

    resp = await async_client.get(BASE, headers=auth_headers(admin))
    data = resp.json()
    assert data["can_review"] is True
    assert len(data["requests"]) == 2
    assert data["stats"] == {"pending": 2, "approved": 0, "rejected": 0, "total": 2}

    resp = await async_client.get(BASE, params={"requested_by": other.external_id}, headers=auth_headers(admin))
    assert [r["requested_by"] for r in resp.json()["requests"]] == [other.external_id]


@pytest.mark.anyio
async def test_requests_of_others_are_hidden(async_client, agent, admin, make_user, auth_headers):
    other = await make_user("marketer@test.com", FullRole.MARKETING)
    request_id = (await submit(async_client, auth_headers(other), grant("careers"))).json()["id"]

    assert (await async_client.get(f"{BASE}/{request_id}", headers=auth_headers(agent))).status_code == 403
    assert (await async_client.get(f"{BASE}/{request_id}", headers=auth_headers(other))).status_code == 200
    assert (await async_client.get(f"{BASE}/{request_id}", headers=auth_headers(admin))).status_code == 200
    assert (await async_client.get(f"{BASE}/9999", headers=auth_headers(admin))).status_code == 404


@pytest.mark.anyio
async def test_approval_grants_access_to_the_live_session(async_client, agent, admin, auth_headers, db_session):
    agent_headers = auth_headers(agent)
    assert (await async_client.get("/api/v1/blogs", headers=agent_headers)).status_code == 403
    request_id = (await submit(async_client, agent_headers, grant("blogs"))).json()["id"]

    resp = await async_client.post(
        f"{BASE}/{request_id}/approve",
        json={"review_notes": "Two weeks of cover"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["status"] == "approved"
    assert data["reviewed_by"] == admin.external_id
    assert data["granted_permissions"] == [grant("blogs")]

    # Cached principal was dropped, so the same credential sees the override
    assert (await async_client.get("/api/v1/blogs", headers=agent_headers)).status_code == 200

    stored = await db_session.get(User, agent.id)
    assert stored.permission_overrides == [grant("blogs")]

    resp = await async_client.post(f"{BASE}/{request_id}/approve", json={}, headers=auth_headers(admin))
    assert resp.status_code == 409


@pytest.mark.anyio
async def test_partial_approval_replaces_existing_override(async_client, make_user, admin, auth_headers, db_session):
    agent = await make_user(
        "agent@test.com",
        FullRole.AGENT,
        overrides=[
            CollectionGrant(collection=Collection.NEWS, sub_role=SubRole.OBSERVER),
            CollectionGrant(collection=Collection.MALLS, sub_role=SubRole.OBSERVER),
        ],
    )
    request_id = (await submit(
        async_client, auth_headers(agent), grant("news", "moderator"), grant("hotels")
    )).json()["id"]

    resp = await async_client.post(
        f"{BASE}/{request_id}/approve",
        json={"granted_permissions": [grant("news")]},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 200, resp.text

    stored = await db_session.get(User, agent.id)
    assert stored.permission_overrides == [grant("malls", "observer"), grant("news")]


@pytest.mark.anyio
async def test_approval_follows_override_rules(async_client, agent, admin, super_admin, make_user, auth_headers, db_session):
    # Only a super admin may grant the users collection
    request_id = (await submit(async_client, auth_headers(agent), grant("users", "observer"))).json()["id"]
    resp = await async_client.post(f"{BASE}/{request_id}/approve", json={}, headers=auth_headers(admin))
    assert resp.status_code == 400

    stored = await db_session.get(PermissionRequest, request_id)
    assert stored.status == "pending"

    # An admin cannot raise a peer's access
    other_admin = await make_user("other-admin@test.com", FullRole.ADMIN)
    peer_request = (await submit(async_client, auth_headers(other_admin), grant("system", "observer"))).json()["id"]
    resp = await async_client.post(f"{BASE}/{peer_request}/approve", json={}, headers=auth_headers(admin))
    assert resp.status_code == 403

    resp = await async_client.post(f"{BASE}/{peer_request}/approve", json={}, headers=auth_headers(super_admin))
    assert resp.status_code == 200, resp.text


@pytest.mark.anyio
async def test_reviewing_needs_the_permissions_capability(async_client, agent, make_user, auth_headers):
    request_id = (await submit(async_client, auth_headers(agent))).json()["id"]
    hr = await make_user("hr@test.com", FullRole.HR)

    for step in ("approve", "reject"):
        resp = await async_client.post(f"{BASE}/{request_id}/{step}", json={}, headers=auth_headers(hr))
        assert resp.status_code == 403
        resp = await async_client.post(f"{BASE}/{request_id}/{step}", json={}, headers=auth_headers(agent))
        assert resp.status_code == 403


@pytest.mark.anyio
async def test_reject_request(async_client, agent, admin, auth_headers, db_session):
    request_id = (await submit(async_client, auth_headers(agent))).json()["id"]

    resp = await async_client.post(
        f"{BASE}/{request_id}/reject",
        json={"review_notes": "Blog is handled by marketing"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "rejected"
    assert resp.json()["review_notes"] == "Blog is handled by marketing"

    stored = await db_session.get(User, agent.id)
    assert stored.permission_overrides == []

    resp = await async_client.post(f"{BASE}/{request_id}/approve", json={}, headers=auth_headers(admin))
    assert resp.status_code == 409

    logs = (await db_session.execute(
        select(AuditLog).where(AuditLog.action == AuditAction.PERMISSION_REQUEST_REJECTED.value)
    )).scalars().all()
    assert [log.target_user_id for log in logs] == [agent.external_id]
