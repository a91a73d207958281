# core/audit.py
"""
Audit trail writer.

Recording is best effort: a failed write is logged and rolled back, and the
request carries on.
"""
from typing import Any

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db_models.audit_log import AuditAction, AuditLevel, AuditLog
from core.logging import get_logger
from core.principal import AuthenticatedUser

logger = get_logger(__name__)


def client_info(request: Request | None) -> tuple[str | None, str | None]:
    """(ip, user agent) of the request, forwarded-for header first."""
    if request is None:
        return None, None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None
    return ip, request.headers.get("user-agent")


async def record_audit_event(
    db: AsyncSession,
    action: AuditAction,
    *,
    actor: AuthenticatedUser | None = None,
    actor_email: str | None = None,
    target_user_id: str | None = None,
    resource: str | None = None,
    resource_id: str | None = None,
    details: dict[str, Any] | None = None,
    request: Request | None = None,
    success: bool = True,
    error_message: str | None = None,
    level: AuditLevel = AuditLevel.INFO,
) -> AuditLog | None:
    """Write one audit entry and commit it. Returns None if the write failed."""
    ip, user_agent = client_info(request)
    entry = AuditLog(
        action=action.value,
        level=level.value,
        user_id=actor.external_id if actor else None,
        user_email=actor.email if actor else actor_email,
        user_role=actor.full_role.value if actor else None,
        target_user_id=target_user_id,
        resource=resource,
        resource_id=resource_id,
        details=details,
        ip=ip,
        user_agent=user_agent,
        success=success,
        error_message=error_message,
    )
    try:
        db.add(entry)
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Failed to write audit log entry", extra={"action": action.value})
        await db.rollback()
        return None
    return entry
