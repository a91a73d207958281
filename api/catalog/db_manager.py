# api/catalog/db_manager.py
"""
Business logic for content collections (projects, malls, blog posts...).

All collections share one table and one workflow:

    draft -> pending_review -> approved -> published
                            -> rejected
    any -> archived (soft delete)
"""
from typing import Any

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from db_models.audit_log import AuditAction, AuditLevel
from db_models.catalog_entry import CatalogEntry, EntryStatus
from core.audit import record_audit_event
from core.principal import AuthenticatedUser, Collection
from . import queries

# Statuses an author may set directly when creating or editing
AUTHOR_STATUSES = frozenset({EntryStatus.DRAFT, EntryStatus.PENDING_REVIEW})

# moderation step -> (allowed current statuses, resulting status)
MODERATION_TRANSITIONS: dict[str, tuple[frozenset[EntryStatus], EntryStatus]] = {
    "approve": (frozenset({EntryStatus.PENDING_REVIEW, EntryStatus.REJECTED}), EntryStatus.APPROVED),
    "reject": (frozenset({EntryStatus.PENDING_REVIEW, EntryStatus.APPROVED}), EntryStatus.REJECTED),
    "publish": (frozenset({EntryStatus.APPROVED}), EntryStatus.PUBLISHED),
    "unpublish": (frozenset({EntryStatus.PUBLISHED}), EntryStatus.APPROVED),
}


class EntryNotFoundError(Exception):
    pass


class DuplicateSlugError(Exception):
    pass


class EntryStatusError(Exception):
    """Raised when a workflow step does not apply to the entry's status."""
    pass


async def get_entry(db: AsyncSession, collection: Collection, slug: str) -> CatalogEntry:
    result = await db.execute(queries.select_entry(collection.value, slug))
    entry = result.scalar_one_or_none()
    if entry is None:
        raise EntryNotFoundError(f"No {collection.value} entry with slug '{slug}'")
    return entry


async def list_entries(
    db: AsyncSession,
    collection: Collection,
    status: EntryStatus | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 20,
) -> list[CatalogEntry]:
    stmt = queries.select_entries(
        collection.value,
        status=status.value if status else None,
        search=search,
        offset=skip,
        limit=limit,
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def count_entries(db: AsyncSession, collection: Collection) -> dict[str, int]:
    counts = {status.value: 0 for status in EntryStatus}
    for status, count in (await db.execute(queries.count_entries_by_status(collection.value))).all():
        counts[status] = count
    counts["total"] = sum(counts.values())
    return counts


async def dropdown(db: AsyncSession, collection: Collection) -> list[dict[str, str]]:
    result = await db.execute(queries.select_dropdown(collection.value, EntryStatus.PUBLISHED.value))
    return [{"slug": slug, "title": title} for slug, title in result.all()]


def _check_author_status(status: EntryStatus) -> None:
    if status not in AUTHOR_STATUSES:
        raise EntryStatusError(f"Status '{status.value}' can only be reached through moderation")


async def create_entry(
    db: AsyncSession,
    user: AuthenticatedUser,
    collection: Collection,
    slug: str,
    title: str,
    data: dict[str, Any],
    status: EntryStatus = EntryStatus.DRAFT,
    request: Request | None = None,
) -> CatalogEntry:
    """
    Raises:
        DuplicateSlugError: If the slug exists in this collection
        EntryStatusError: If `status` is not an author status
    """
    _check_author_status(status)

    result = await db.execute(queries.select_entry(collection.value, slug))
    if result.scalar_one_or_none() is not None:
        raise DuplicateSlugError(f"A {collection.value} entry with slug '{slug}' already exists")

    entry = CatalogEntry(
        collection=collection.value,
        slug=slug,
        title=title,
        status=status.value,
        data=data,
        created_by=user.external_id,
        updated_by=user.external_id,
    )
    db.add(entry)
    await db.commit()
    await db.refresh(entry)

    await record_audit_event(
        db,
        AuditAction.CONTENT_CREATED,
        actor=user,
        resource=collection.value,
        resource_id=slug,
        request=request,
    )
    return entry


async def update_entry(
    db: AsyncSession,
    user: AuthenticatedUser,
    collection: Collection,
    slug: str,
    changes: dict[str, Any],
    request: Request | None = None,
) -> CatalogEntry:
    """Apply title/data/status changes. Archived entries are read-only."""
    entry = await get_entry(db, collection, slug)
    if entry.status == EntryStatus.ARCHIVED.value:
        raise EntryStatusError("Archived entries cannot be edited")

    fields = sorted(changes)
    if "status" in changes:
        status = changes.pop("status")
        _check_author_status(status)
        entry.status = status.value
    if "title" in changes:
        entry.title = changes["title"]
    if "data" in changes:
        entry.data = changes["data"]
    entry.updated_by = user.external_id
    await db.commit()
    await db.refresh(entry)

    await record_audit_event(
        db,
        AuditAction.CONTENT_UPDATED,
        actor=user,
        resource=collection.value,
        resource_id=slug,
        details={"fields": fields},
        request=request,
    )
    return entry


async def moderate_entry(
    db: AsyncSession,
    user: AuthenticatedUser,
    collection: Collection,
    slug: str,
    step: str,
    note: str | None = None,
    request: Request | None = None,
) -> CatalogEntry:
    """
    Raises:
        EntryNotFoundError, EntryStatusError
    """
    allowed, target = MODERATION_TRANSITIONS[step]
    entry = await get_entry(db, collection, slug)
    current = EntryStatus(entry.status)
    if current not in allowed:
        raise EntryStatusError(f"Cannot {step} an entry in status '{current.value}'")

    entry.status = target.value
    entry.updated_by = user.external_id
    await db.commit()
    await db.refresh(entry)

    await record_audit_event(
        db,
        AuditAction.CONTENT_MODERATED,
        actor=user,
        resource=collection.value,
        resource_id=slug,
        details={"step": step, "from": current.value, "to": target.value, "note": note},
        request=request,
    )
    return entry


async def archive_entry(
    db: AsyncSession,
    user: AuthenticatedUser,
    collection: Collection,
    slug: str,
    request: Request | None = None,
) -> CatalogEntry:
    """Soft delete."""
    entry = await get_entry(db, collection, slug)
    previous = entry.status
    entry.status = EntryStatus.ARCHIVED.value
    entry.updated_by = user.external_id
    await db.commit()
    await db.refresh(entry)

    await record_audit_event(
        db,
        AuditAction.CONTENT_DELETED,
        actor=user,
        resource=collection.value,
        resource_id=slug,
        details={"from": previous, "purged": False},
        request=request,
    )
    return entry


async def purge_entry(
    db: AsyncSession,
    user: AuthenticatedUser,
    collection: Collection,
    slug: str,
    request: Request | None = None,
) -> None:
    """Remove the row for good."""
    await get_entry(db, collection, slug)
    await db.execute(queries.delete_entry(collection.value, slug))
    await db.commit()

    await record_audit_event(
        db,
        AuditAction.CONTENT_DELETED,
        actor=user,
        resource=collection.value,
        resource_id=slug,
        details={"purged": True},
        request=request,
        level=AuditLevel.WARNING,
    )
