# api/audit/models.py
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from db_models.audit_log import AuditAction, AuditLevel


class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    level: str
    user_id: str | None = None
    user_email: str | None = None
    user_role: str | None = None
    target_user_id: str | None = None
    resource: str | None = None
    resource_id: str | None = None
    details: dict[str, Any] | None = None
    ip: str | None = None
    user_agent: str | None = None
    success: bool
    error_message: str | None = None
    timestamp: datetime


class AuditStats(BaseModel):
    total: int
    successful: int
    failed: int
    by_level: dict[str, int]


class AuditLogListResponse(BaseModel):
    logs: list[AuditLogRead]
    total: int
    skip: int
    limit: int
    has_more: bool
    stats: AuditStats


class AuditExportRequest(BaseModel):
    """Filters for a CSV export; same meaning as the list query parameters."""
    action: AuditAction | None = None
    level: AuditLevel | None = None
    user_id: str | None = None
    success: bool | None = None
    start: datetime | None = None
    end: datetime | None = None
