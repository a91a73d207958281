# api/audit/views.py
"""
Audit trail endpoints (VIEW_AUDIT_TRAIL capability).
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from db_models.audit_log import AuditAction, AuditLevel
from core.deps import AuditViewer
from core.logging import get_logger
from .models import AuditExportRequest, AuditLogListResponse, AuditLogRead, AuditStats
from . import db_manager

logger = get_logger(__name__)

router = APIRouter(prefix="/audit-logs", tags=["audit"])


def _filters(
    action: AuditAction | None,
    level: AuditLevel | None,
    user_id: str | None,
    success: bool | None,
    start: datetime | None,
    end: datetime | None,
) -> dict:
    return {
        "action": action.value if action else None,
        "level": level.value if level else None,
        "user_id": user_id,
        "success": success,
        "start": start,
        "end": end,
    }


@router.get("", response_model=AuditLogListResponse, summary="List audit log entries")
async def list_audit_logs_endpoint(
    viewer: AuditViewer,
    db: AsyncSession = Depends(get_session),
    action: AuditAction | None = None,
    level: AuditLevel | None = None,
    user_id: str | None = None,
    success: bool | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=db_manager.MAX_PAGE_SIZE),
) -> AuditLogListResponse:
    """Most recent first, with success/level counts over the same filter."""
    filters = _filters(action, level, user_id, success, start, end)
    logs, total = await db_manager.list_audit_logs(db, skip=skip, limit=limit, **filters)
    stats = await db_manager.audit_stats(db, **filters)

    return AuditLogListResponse(
        logs=[AuditLogRead.model_validate(log) for log in logs],
        total=total,
        skip=skip,
        limit=limit,
        has_more=total > skip + limit,
        stats=AuditStats(**stats),
    )


@router.post("/export", summary="Export audit log entries as CSV")
async def export_audit_logs_endpoint(
    payload: AuditExportRequest,
    viewer: AuditViewer,
    db: AsyncSession = Depends(get_session),
) -> Response:
    filters = _filters(payload.action, payload.level, payload.user_id, payload.success, payload.start, payload.end)
    content = await db_manager.export_audit_logs_csv(db, **filters)
    logger.info("Audit trail exported", extra={"user_id": viewer.external_id})
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="audit-logs.csv"'},
    )
