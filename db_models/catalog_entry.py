# db_models/catalog_entry.py
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, String, DateTime, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base


class EntryStatus(str, Enum):
    """Publication workflow of a catalog entry."""
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class CatalogEntry(Base):
    """One item of a content collection (a project, a mall, a blog post...)."""
    __tablename__ = "catalog_entries"
    __table_args__ = (
        UniqueConstraint("collection", "slug", name="uq_catalog_collection_slug"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    collection: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        default=EntryStatus.DRAFT.value,
    )
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=func.now(),
    )
