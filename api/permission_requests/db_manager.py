# api/permission_requests/db_manager.py
"""
Business logic for permission requests.

A request never changes access by itself. Approval writes the granted
collections into the requester's permission overrides through the same path
as a manual override change, so the role hierarchy and the restricted
collections apply unchanged.
"""
from datetime import datetime, timezone

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from db_models.audit_log import AuditAction, AuditLevel
from db_models.permission_request import PermissionRequest, RequestPriority, RequestStatus
from db_models.user import as_utc
from core.audit import record_audit_event
from core.logging import get_logger
from core.permissions import is_super_admin, sub_role_for
from core.principal import AuthenticatedUser, CollectionGrant, dump_grants, parse_grants
from api.users import db_manager as users_db_manager
from . import queries

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100


class PermissionRequestNotFoundError(Exception):
    pass


class InvalidPermissionRequestError(Exception):
    """Raised when a submitted request cannot be accepted."""
    pass


class OverlappingRequestError(Exception):
    """Raised when a pending request already covers one of the collections."""
    pass


class RequestAlreadyReviewedError(Exception):
    pass


async def submit_request(
    db: AsyncSession,
    caller: AuthenticatedUser,
    requested_permissions: list[CollectionGrant],
    message: str,
    business_justification: str | None = None,
    requested_expiry: datetime | None = None,
    priority: RequestPriority = RequestPriority.NORMAL,
    request: Request | None = None,
) -> PermissionRequest:
    """
    Record a pending request for the grants the caller does not hold yet.

    Raises:
        InvalidPermissionRequestError: Super admin caller, duplicate collections,
            nothing new requested or an expiry in the past
        OverlappingRequestError: A pending request of the caller covers one of the collections
    """
    if is_super_admin(caller):
        raise InvalidPermissionRequestError("Super administrators already have all permissions")

    seen = set()
    for grant in requested_permissions:
        if grant.collection in seen:
            raise InvalidPermissionRequestError(f"Duplicate request for collection '{grant.collection.value}'")
        seen.add(grant.collection)

    wanted = [g for g in requested_permissions if sub_role_for(caller, g.collection) != g.sub_role]
    if not wanted:
        raise InvalidPermissionRequestError("You already have all the requested permissions")

    expiry = as_utc(requested_expiry)
    if expiry is not None and expiry <= datetime.now(timezone.utc):
        raise InvalidPermissionRequestError("Requested expiry must be in the future")

    result = await db.execute(queries.select_pending_requests_of(caller.external_id))
    pending = {
        grant["collection"]
        for existing in result.scalars().all()
        for grant in existing.requested_permissions
    }
    overlap = sorted(pending & {g.collection.value for g in wanted})
    if overlap:
        raise OverlappingRequestError(
            f"You already have a pending request for: {', '.join(overlap)}"
        )

    perm_request = PermissionRequest(
        requested_by=caller.external_id,
        requested_by_email=caller.email,
        requested_permissions=dump_grants(wanted),
        message=message,
        business_justification=business_justification,
        requested_expiry=expiry,
        priority=priority.value,
        status=RequestStatus.PENDING.value,
    )
    db.add(perm_request)
    await db.commit()
    await db.refresh(perm_request)

    await record_audit_event(
        db,
        AuditAction.PERMISSION_REQUESTED,
        actor=caller,
        target_user_id=caller.external_id,
        resource="permission_requests",
        resource_id=str(perm_request.id),
        details={
            "permissions": perm_request.requested_permissions,
            "priority": priority.value,
            "expiry": expiry.isoformat() if expiry else "permanent",
        },
        request=request,
    )
    return perm_request


async def list_requests(
    db: AsyncSession,
    caller: AuthenticatedUser,
    can_review: bool,
    status: RequestStatus | None = None,
    requested_by: str | None = None,
    limit: int = 20,
) -> tuple[list[PermissionRequest], dict[str, int] | None]:
    """
    Reviewers see every request (optionally one requester's) plus counts per
    status; everyone else sees only their own, without counts.
    """
    owner = requested_by if can_review else caller.external_id
    result = await db.execute(
        queries.select_requests(requested_by=owner, status=status.value if status else None, limit=limit)
    )
    requests = list(result.scalars().all())
    if not can_review:
        return requests, None

    stats = {s.value: 0 for s in RequestStatus}
    for status_value, count in (await db.execute(queries.count_requests_by_status())).all():
        stats[status_value] = count
    stats["total"] = sum(stats.values())
    return requests, stats


async def get_request(db: AsyncSession, request_id: int) -> PermissionRequest:
    result = await db.execute(queries.select_request(request_id))
    perm_request = result.scalar_one_or_none()
    if perm_request is None:
        raise PermissionRequestNotFoundError("Permission request not found")
    return perm_request


def merge_overrides(existing: tuple[CollectionGrant, ...], granted: list[CollectionGrant]) -> list[CollectionGrant]:
    """Granted collections replace the existing override for the same collection."""
    replaced = {grant.collection for grant in granted}
    return [grant for grant in existing if grant.collection not in replaced] + list(granted)


def _mark_reviewed(
    perm_request: PermissionRequest,
    caller: AuthenticatedUser,
    status: RequestStatus,
    review_notes: str | None,
) -> None:
    perm_request.status = status.value
    perm_request.reviewed_by = caller.external_id
    perm_request.reviewed_by_email = caller.email
    perm_request.reviewed_at = datetime.now(timezone.utc)
    perm_request.review_notes = review_notes


async def _pending_request(db: AsyncSession, request_id: int) -> PermissionRequest:
    perm_request = await get_request(db, request_id)
    if not perm_request.is_pending():
        raise RequestAlreadyReviewedError(f"Request has already been {perm_request.status}")
    return perm_request


async def approve_request(
    db: AsyncSession,
    caller: AuthenticatedUser,
    request_id: int,
    granted_permissions: list[CollectionGrant] | None = None,
    review_notes: str | None = None,
    request: Request | None = None,
) -> PermissionRequest:
    """
    Grant the request and merge it into the requester's overrides.

    Raises:
        PermissionRequestNotFoundError, RequestAlreadyReviewedError,
        users_db_manager.UserNotFoundError, users_db_manager.HierarchyError,
        users_db_manager.InvalidOverridesError
    """
    perm_request = await _pending_request(db, request_id)
    granted = granted_permissions or list(parse_grants(perm_request.requested_permissions))

    target = await users_db_manager.get_user(db, perm_request.requested_by)
    merged = merge_overrides(parse_grants(target.permission_overrides), granted)
    await users_db_manager.set_permission_overrides(db, caller, target.external_id, merged, request=request)

    _mark_reviewed(perm_request, caller, RequestStatus.APPROVED, review_notes)
    perm_request.granted_permissions = dump_grants(granted)
    await db.commit()
    await db.refresh(perm_request)
    logger.info(
        "Permission request approved",
        extra={"request_id": perm_request.id, "user_id": caller.external_id, "target_user_id": perm_request.requested_by},
    )

    await record_audit_event(
        db,
        AuditAction.PERMISSION_REQUEST_APPROVED,
        actor=caller,
        target_user_id=perm_request.requested_by,
        resource="permission_requests",
        resource_id=str(perm_request.id),
        details={"granted": perm_request.granted_permissions, "notes": review_notes},
        request=request,
        level=AuditLevel.WARNING,
    )
    return perm_request


async def reject_request(
    db: AsyncSession,
    caller: AuthenticatedUser,
    request_id: int,
    review_notes: str | None = None,
    request: Request | None = None,
) -> PermissionRequest:
    """
    Raises:
        PermissionRequestNotFoundError, RequestAlreadyReviewedError,
        users_db_manager.HierarchyError
    """
    perm_request = await _pending_request(db, request_id)
    try:
        target = await users_db_manager.get_user(db, perm_request.requested_by)
    except users_db_manager.UserNotFoundError:
        # Requester is gone; the request can still be closed
        target = None
    if target is not None:
        await users_db_manager.ensure_manageable(db, caller, target, "review the requests of", request)

    _mark_reviewed(perm_request, caller, RequestStatus.REJECTED, review_notes)
    await db.commit()
    await db.refresh(perm_request)

    await record_audit_event(
        db,
        AuditAction.PERMISSION_REQUEST_REJECTED,
        actor=caller,
        target_user_id=perm_request.requested_by,
        resource="permission_requests",
        resource_id=str(perm_request.id),
        details={"notes": review_notes},
        request=request,
    )
    return perm_request
