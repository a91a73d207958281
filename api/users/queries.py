# api/users/queries.py
"""
SQLAlchemy query builders for user management.
"""
from datetime import datetime

from sqlalchemy import func, or_, select

from db_models.audit_log import AuditLog
from db_models.user import User


def _apply_filters(stmt, role: str | None, status: str | None, search: str | None):
    if role:
        stmt = stmt.where(User.full_role == role)
    if status:
        stmt = stmt.where(User.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(
                User.display_name.ilike(pattern),
                User.email.ilike(pattern),
                User.department.ilike(pattern),
            )
        )
    return stmt


def select_users(
    role: str | None = None,
    status: str | None = None,
    search: str | None = None,
    offset: int = 0,
    limit: int = 20,
):
    """Filtered page of users, newest first."""
    stmt = _apply_filters(select(User), role, status, search)
    return stmt.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit)


def count_users(role: str | None = None, status: str | None = None, search: str | None = None):
    return _apply_filters(select(func.count(User.id)), role, status, search)


def select_user_by_external_id(external_id: str):
    return select(User).where(User.external_id == external_id)


def select_user_by_email(email: str):
    return select(User).where(User.email == email.strip().lower())


def count_users_by_status():
    return select(User.status, func.count(User.id)).group_by(User.status)


def count_users_by_role():
    return select(User.full_role, func.count(User.id)).group_by(User.full_role)


def count_locked_users(now: datetime):
    return select(func.count(User.id)).where(User.locked_until > now)


def select_recent_activity(external_id: str, limit: int = 5):
    """Latest audit entries the user performed or was the target of."""
    return (
        select(AuditLog)
        .where(or_(AuditLog.user_id == external_id, AuditLog.target_user_id == external_id))
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .limit(limit)
    )
