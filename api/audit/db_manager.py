# api/audit/db_manager.py
"""
Read side of the audit trail.
"""
import csv
import io

from sqlalchemy.ext.asyncio import AsyncSession

from db_models.audit_log import AuditLevel, AuditLog
from . import queries

MAX_PAGE_SIZE = 1000
MAX_EXPORT_ROWS = 10000

EXPORT_COLUMNS = (
    "timestamp",
    "action",
    "level",
    "success",
    "user_id",
    "user_email",
    "user_role",
    "target_user_id",
    "resource",
    "resource_id",
    "ip",
    "error_message",
)


async def list_audit_logs(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 100,
    **filters,
) -> tuple[list[AuditLog], int]:
    limit = min(limit, MAX_PAGE_SIZE)
    result = await db.execute(queries.select_audit_logs(offset=skip, limit=limit, **filters))
    logs = list(result.scalars().all())
    total = (await db.execute(queries.count_audit_logs(**filters))).scalar() or 0
    return logs, total


async def audit_stats(db: AsyncSession, **filters) -> dict:
    by_level = {level.value: 0 for level in AuditLevel}
    for level, count in (await db.execute(queries.count_by_level(**filters))).all():
        by_level[level] = count

    successful = failed = 0
    for success, count in (await db.execute(queries.count_by_success(**filters))).all():
        if success:
            successful = count
        else:
            failed = count

    return {
        "total": successful + failed,
        "successful": successful,
        "failed": failed,
        "by_level": by_level,
    }


async def export_audit_logs_csv(db: AsyncSession, **filters) -> str:
    """Matching entries as CSV text, capped at MAX_EXPORT_ROWS."""
    result = await db.execute(queries.select_audit_logs(offset=0, limit=MAX_EXPORT_ROWS, **filters))

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_COLUMNS)
    for log in result.scalars():
        writer.writerow([getattr(log, column) for column in EXPORT_COLUMNS])
    return buffer.getvalue()
