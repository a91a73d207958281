# api/catalog/queries.py
"""
SQLAlchemy query builders for catalog entries.
"""
from sqlalchemy import delete, func, or_, select

from db_models.catalog_entry import CatalogEntry


def select_entries(
    collection: str,
    status: str | None = None,
    search: str | None = None,
    offset: int = 0,
    limit: int = 20,
):
    """Entries of one collection, most recently created first."""
    stmt = select(CatalogEntry).where(CatalogEntry.collection == collection)
    if status:
        stmt = stmt.where(CatalogEntry.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(CatalogEntry.title.ilike(pattern), CatalogEntry.slug.ilike(pattern)))
    return stmt.order_by(CatalogEntry.created_at.desc(), CatalogEntry.id.desc()).offset(offset).limit(limit)


def select_entry(collection: str, slug: str):
    return select(CatalogEntry).where(
        CatalogEntry.collection == collection,
        CatalogEntry.slug == slug,
    )


def count_entries_by_status(collection: str):
    return (
        select(CatalogEntry.status, func.count(CatalogEntry.id))
        .where(CatalogEntry.collection == collection)
        .group_by(CatalogEntry.status)
    )


def select_dropdown(collection: str, status: str):
    """(slug, title) pairs for select inputs, alphabetical."""
    return (
        select(CatalogEntry.slug, CatalogEntry.title)
        .where(CatalogEntry.collection == collection, CatalogEntry.status == status)
        .order_by(CatalogEntry.title)
    )


def delete_entry(collection: str, slug: str):
    return delete(CatalogEntry).where(
        CatalogEntry.collection == collection,
        CatalogEntry.slug == slug,
    )
