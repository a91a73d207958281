# db_models/permission_request.py
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, String, Text, DateTime, Index, func
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RequestPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class PermissionRequest(Base):
    """A user's request for collection grants, waiting for an administrator."""
    __tablename__ = "permission_requests"
    __table_args__ = (
        Index("ix_permission_requests_requested_by_created_at", "requested_by", "created_at"),
        Index("ix_permission_requests_status_created_at", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # Requester (external id, like the audit trail)
    requested_by: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    requested_by_email: Mapped[str] = mapped_column(String(255), nullable=False)

    # List of {"collection", "sub_role"} objects
    requested_permissions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    business_justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    priority: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=RequestPriority.NORMAL.value,
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        index=True,
        default=RequestStatus.PENDING.value,
    )

    # Review
    reviewed_by: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    reviewed_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    granted_permissions: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)

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

    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING.value
