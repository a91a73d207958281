import pytest
from sqlalchemy import select

from db_models.audit_log import AuditAction, AuditLog
from db_models.catalog_entry import CatalogEntry
from db_models.user import FullRole


async def create(async_client, headers, collection="communities", slug="jumeirah-village", **fields):
    body = {"slug": slug, "title": fields.pop("title", slug.replace("-", " ").title()), **fields}
    return await async_client.post(f"/api/v1/{collection}", json=body, headers=headers)


@pytest.fixture
async def community_manager(make_user):
    return await make_user("community@test.com", FullRole.COMMUNITY_MANAGER)


@pytest.mark.anyio
async def test_create_and_read_entry(async_client, community_manager, auth_headers):
    headers = auth_headers(community_manager)

    resp = await create(async_client, headers, data={"area": "Al Barsha South", "units": 3200})
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["collection"] == "communities"
    assert data["status"] == "draft"
    assert data["created_by"] == community_manager.external_id

    resp = await async_client.get("/api/v1/communities/jumeirah-village", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"] == {"area": "Al Barsha South", "units": 3200}

    resp = await async_client.get("/api/v1/communities", params={"search": "jumeirah"}, headers=headers)
    assert [e["slug"] for e in resp.json()] == ["jumeirah-village"]


@pytest.mark.anyio
async def test_slugs_are_unique_per_collection(async_client, super_admin, auth_headers):
    headers = auth_headers(super_admin)
    assert (await create(async_client, headers, "malls", "city-centre")).status_code == 201
    assert (await create(async_client, headers, "malls", "city-centre")).status_code == 409
    # Same slug in another collection is fine
    assert (await create(async_client, headers, "hotels", "city-centre")).status_code == 201


@pytest.mark.anyio
async def test_invalid_slug(async_client, super_admin, auth_headers):
    resp = await create(async_client, auth_headers(super_admin), slug="Not A Slug")
    assert resp.status_code == 422


@pytest.mark.anyio
@pytest.mark.parametrize("slug", ["counts", "dropdown"])
async def test_route_names_are_not_valid_slugs(async_client, super_admin, auth_headers, slug):
    resp = await create(async_client, auth_headers(super_admin), slug=slug)
    assert resp.status_code == 422


@pytest.mark.anyio
async def test_authors_cannot_skip_moderation(async_client, community_manager, auth_headers):
    headers = auth_headers(community_manager)
    resp = await create(async_client, headers, status="published")
    assert resp.status_code == 400

    assert (await create(async_client, headers)).status_code == 201
    resp = await async_client.put(
        "/api/v1/communities/jumeirah-village", json={"status": "approved"}, headers=headers
    )
    assert resp.status_code == 400


@pytest.mark.anyio
async def test_full_moderation_workflow(async_client, community_manager, auth_headers):
    headers = auth_headers(community_manager)
    await create(async_client, headers)
    base = "/api/v1/communities/jumeirah-village"

    resp = await async_client.put(base, json={"status": "pending_review", "title": "JVC"}, headers=headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["title"] == "JVC"

    # Publishing needs an approved entry
    assert (await async_client.post(f"{base}/publish", headers=headers)).status_code == 400

    resp = await async_client.post(f"{base}/approve", json={"note": "Looks good"}, headers=headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "approved"

    resp = await async_client.post(f"{base}/publish", headers=headers)
    assert resp.json()["status"] == "published"

    resp = await async_client.get("/api/v1/communities/dropdown", headers=headers)
    assert resp.json() == [{"slug": "jumeirah-village", "title": "JVC"}]

    resp = await async_client.post(f"{base}/unpublish", headers=headers)
    assert resp.json()["status"] == "approved"
    assert (await async_client.get("/api/v1/communities/dropdown", headers=headers)).json() == []


@pytest.mark.anyio
async def test_contributors_cannot_moderate(async_client, make_user, auth_headers):
    agent = await make_user("agent@test.com", FullRole.AGENT)
    headers = auth_headers(agent)
    await create(async_client, headers, "projects", "creek-harbour", status="pending_review")

    resp = await async_client.post("/api/v1/projects/creek-harbour/approve", headers=headers)
    assert resp.status_code == 403
    assert "projects:moderate" in resp.json()["message"]


@pytest.mark.anyio
async def test_archive_and_purge(async_client, super_admin, make_user, auth_headers, session_factory):
    moderator = await make_user("hr@test.com", FullRole.HR)
    headers = auth_headers(moderator)
    await create(async_client, headers, "careers", "sales-lead")

    # MODERATOR has neither DELETE nor MANAGE
    assert (await async_client.delete("/api/v1/careers/sales-lead", headers=headers)).status_code == 403
    assert (await async_client.delete("/api/v1/careers/sales-lead/purge", headers=headers)).status_code == 403

    root_headers = auth_headers(super_admin)
    resp = await async_client.delete("/api/v1/careers/sales-lead", headers=root_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "archived"

    # Archived entries are read-only
    resp = await async_client.put("/api/v1/careers/sales-lead", json={"title": "New"}, headers=headers)
    assert resp.status_code == 400

    resp = await async_client.delete("/api/v1/careers/sales-lead/purge", headers=root_headers)
    assert resp.status_code == 204

    async with session_factory() as session:
        remaining = (await session.execute(select(CatalogEntry))).scalars().all()
        assert remaining == []
        actions = (await session.execute(select(AuditLog.action))).scalars().all()
    assert actions.count(AuditAction.CONTENT_DELETED.value) == 2


@pytest.mark.anyio
async def test_counts(async_client, super_admin, auth_headers):
    headers = auth_headers(super_admin)
    await create(async_client, headers, "plots", "plot-1")
    await create(async_client, headers, "plots", "plot-2", status="pending_review")
    await create(async_client, headers, "plots", "plot-3", status="pending_review")

    resp = await async_client.get("/api/v1/plots/counts", headers=headers)
    assert resp.status_code == 200
    counts = resp.json()
    assert counts["draft"] == 1
    assert counts["pending_review"] == 2
    assert counts["published"] == 0
    assert counts["total"] == 3


@pytest.mark.anyio
async def test_missing_entry(async_client, super_admin, auth_headers):
    resp = await async_client.get("/api/v1/buildings/nope", headers=auth_headers(super_admin))
    assert resp.status_code == 404
    assert resp.json()["error"] == "NOT_FOUND"
