# db_models/user.py
"""
User model for the catalog admin panel.

Full roles decide which collections a user touches by default and whether
system capabilities are reachable at all:
- SUPER_ADMIN / ADMIN: system administrators
- AGENT, MARKETING, SALES, HR, COMMUNITY_MANAGER: collection-scoped staff
- USER: read-only access to a single collection

Per-collection access lives in two JSON lists of {"collection", "sub_role"}
entries: `collection_permissions` (role defaults) and `permission_overrides`
(explicit grants/restrictions, looked up first).
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import JSON, String, Integer, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base


class FullRole(str, Enum):
    """System-wide roles."""
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    AGENT = "agent"
    MARKETING = "marketing"
    SALES = "sales"
    HR = "hr"
    COMMUNITY_MANAGER = "community_manager"
    USER = "user"


class UserStatus(str, Enum):
    """Account lifecycle states. Users are never hard-deleted."""
    INVITED = "invited"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # Identity provider subject
    external_id: Mapped[str] = mapped_column(
        String(128),
        unique=True,
        index=True,
        nullable=False,
    )

    # Login credentials
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Profile
    display_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bio: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    # Role system
    full_role: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        index=True,
        default=FullRole.USER.value,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        default=UserStatus.INVITED.value,
    )
    collection_permissions: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    permission_overrides: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    last_role_change: Mapped[dict[str, Any] | None] = mapped_column(
        JSON,
        nullable=True,
    )

    # Security
    login_attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    locked_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Admin tracking
    created_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Timestamps
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

    def is_locked(self, now: datetime | None = None) -> bool:
        """True while `locked_until` lies in the future."""
        locked_until = as_utc(self.locked_until)
        if locked_until is None:
            return False
        return locked_until > (now or datetime.now(timezone.utc))

    def is_blocked(self) -> bool:
        """Suspended and deleted accounts never authenticate."""
        return self.status in (UserStatus.SUSPENDED.value, UserStatus.DELETED.value)
