# api/audit/queries.py
"""
SQLAlchemy query builders for the audit trail.
"""
from datetime import datetime

from sqlalchemy import func, select

from db_models.audit_log import AuditLog


def _apply_filters(
    stmt,
    action: str | None = None,
    level: str | None = None,
    user_id: str | None = None,
    success: bool | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
):
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if level:
        stmt = stmt.where(AuditLog.level == level)
    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if success is not None:
        stmt = stmt.where(AuditLog.success == success)
    if start is not None:
        stmt = stmt.where(AuditLog.timestamp >= start)
    if end is not None:
        stmt = stmt.where(AuditLog.timestamp <= end)
    return stmt


def select_audit_logs(offset: int = 0, limit: int = 100, **filters):
    """Matching entries, most recent first."""
    stmt = _apply_filters(select(AuditLog), **filters)
    return stmt.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).offset(offset).limit(limit)


def count_audit_logs(**filters):
    return _apply_filters(select(func.count(AuditLog.id)), **filters)


def count_by_level(**filters):
    return _apply_filters(select(AuditLog.level, func.count(AuditLog.id)), **filters).group_by(AuditLog.level)


def count_by_success(**filters):
    return _apply_filters(select(AuditLog.success, func.count(AuditLog.id)), **filters).group_by(AuditLog.success)
