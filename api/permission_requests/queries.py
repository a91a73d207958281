# api/permission_requests/queries.py
"""
SQLAlchemy query builders for permission requests.
"""
from sqlalchemy import func, select

from db_models.permission_request import PermissionRequest, RequestStatus


def select_requests(requested_by: str | None = None, status: str | None = None, limit: int = 20):
    """Newest first, optionally narrowed to one requester and/or one status."""
    stmt = select(PermissionRequest)
    if requested_by:
        stmt = stmt.where(PermissionRequest.requested_by == requested_by)
    if status:
        stmt = stmt.where(PermissionRequest.status == status)
    return stmt.order_by(PermissionRequest.created_at.desc(), PermissionRequest.id.desc()).limit(limit)


def select_request(request_id: int):
    return select(PermissionRequest).where(PermissionRequest.id == request_id)


def select_pending_requests_of(requested_by: str):
    return select(PermissionRequest).where(
        PermissionRequest.requested_by == requested_by,
        PermissionRequest.status == RequestStatus.PENDING.value,
    )


def count_requests_by_status():
    return select(PermissionRequest.status, func.count(PermissionRequest.id)).group_by(PermissionRequest.status)
