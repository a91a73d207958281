# db_models/audit_log.py
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, String, Boolean, DateTime, Text, Index, func
from sqlalchemy.orm import Mapped, mapped_column

from db_base import Base


class AuditAction(str, Enum):
    """Security and administration events written to the audit trail."""
    USER_LOGIN = "user_login"
    USER_LOGOUT = "user_logout"
    LOGIN_FAILED = "login_failed"
    ACCOUNT_LOCKED = "account_locked"
    USER_REGISTERED = "user_registered"
    INVITATION_SENT = "invitation_sent"
    USER_UPDATED = "user_updated"
    USER_ROLE_CHANGED = "user_role_changed"
    USER_SUSPENDED = "user_suspended"
    USER_DELETED = "user_deleted"
    USER_REACTIVATED = "user_reactivated"
    USER_UNLOCKED = "user_unlocked"
    PASSWORD_RESET = "password_reset"
    PERMISSIONS_CHANGED = "permissions_changed"
    PERMISSION_REQUESTED = "permission_requested"
    PERMISSION_REQUEST_APPROVED = "permission_request_approved"
    PERMISSION_REQUEST_REJECTED = "permission_request_rejected"
    CONTENT_CREATED = "content_created"
    CONTENT_UPDATED = "content_updated"
    CONTENT_DELETED = "content_deleted"
    CONTENT_MODERATED = "content_moderated"
    UNAUTHORIZED_ACCESS_ATTEMPT = "unauthorized_access_attempt"


class AuditLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_action_timestamp", "action", "timestamp"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    level: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=AuditLevel.INFO.value,
    )

    # Who did it (external ids, so entries survive soft deletes)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    target_user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)

    # What was touched
    resource: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Request info
    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
