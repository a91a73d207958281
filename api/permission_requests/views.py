# api/permission_requests/views.py
"""
Permission request endpoints. Any signed-in user may ask for collection
grants; reviewing needs the USER_PERMISSIONS capability.
"""
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from db_models.permission_request import RequestStatus
from core.deps import CurrentUser, PermissionManager, SessionService
from core.exceptions import AuthorizationError, BadRequestError, ConflictError, NotFoundError
from core.permissions import SystemCapability, has_system_capability
from api.users import db_manager as users_db_manager
from .models import (
    ApprovalRequest,
    PermissionRequestCreate,
    PermissionRequestListResponse,
    PermissionRequestRead,
    RequestStats,
    ReviewRequest,
)
from . import db_manager

router = APIRouter(prefix="/permission-requests", tags=["permission-requests"])


def _can_review(user) -> bool:
    return has_system_capability(user, SystemCapability.USER_PERMISSIONS)


@router.post(
    "",
    response_model=PermissionRequestRead,
    status_code=status.HTTP_201_CREATED,
    summary="Ask for collection permissions",
)
async def submit_request_endpoint(
    payload: PermissionRequestCreate,
    request: Request,
    user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> PermissionRequestRead:
    """Grants the caller already holds are dropped from the request."""
    try:
        perm_request = await db_manager.submit_request(
            db,
            user,
            payload.requested_permissions,
            payload.message,
            business_justification=payload.business_justification,
            requested_expiry=payload.requested_expiry,
            priority=payload.priority,
            request=request,
        )
    except db_manager.InvalidPermissionRequestError as exc:
        raise BadRequestError(str(exc)) from exc
    except db_manager.OverlappingRequestError as exc:
        raise ConflictError(str(exc)) from exc

    return PermissionRequestRead.model_validate(perm_request)


@router.get("", response_model=PermissionRequestListResponse, summary="List permission requests")
async def list_requests_endpoint(
    user: CurrentUser,
    db: AsyncSession = Depends(get_session),
    request_status: RequestStatus | None = Query(None, alias="status"),
    requested_by: str | None = None,
    limit: int = Query(20, ge=1, le=db_manager.MAX_PAGE_SIZE),
) -> PermissionRequestListResponse:
    """Reviewers see every request; everyone else sees their own."""
    can_review = _can_review(user)
    requests, stats = await db_manager.list_requests(
        db, user, can_review, status=request_status, requested_by=requested_by, limit=limit
    )
    return PermissionRequestListResponse(
        requests=[PermissionRequestRead.model_validate(r) for r in requests],
        stats=RequestStats(**stats) if stats is not None else None,
        can_review=can_review,
    )


@router.get("/{request_id}", response_model=PermissionRequestRead, summary="Get one permission request")
async def get_request_endpoint(
    request_id: int,
    user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> PermissionRequestRead:
    try:
        perm_request = await db_manager.get_request(db, request_id)
    except db_manager.PermissionRequestNotFoundError as exc:
        raise NotFoundError(str(exc)) from exc

    if perm_request.requested_by != user.external_id and not _can_review(user):
        raise AuthorizationError("You can only view your own permission requests")
    return PermissionRequestRead.model_validate(perm_request)


@router.post("/{request_id}/approve", response_model=PermissionRequestRead, summary="Approve a permission request")
async def approve_request_endpoint(
    request_id: int,
    payload: ApprovalRequest,
    request: Request,
    reviewer: PermissionManager,
    service: SessionService,
    db: AsyncSession = Depends(get_session),
) -> PermissionRequestRead:
    try:
        perm_request = await db_manager.approve_request(
            db,
            reviewer,
            request_id,
            granted_permissions=payload.granted_permissions,
            review_notes=payload.review_notes,
            request=request,
        )
    except (db_manager.PermissionRequestNotFoundError, users_db_manager.UserNotFoundError) as exc:
        raise NotFoundError(str(exc)) from exc
    except db_manager.RequestAlreadyReviewedError as exc:
        raise ConflictError(str(exc)) from exc
    except users_db_manager.HierarchyError as exc:
        raise AuthorizationError(str(exc)) from exc
    except users_db_manager.InvalidOverridesError as exc:
        raise BadRequestError(str(exc)) from exc

    await service.invalidate_user(perm_request.requested_by)
    return PermissionRequestRead.model_validate(perm_request)


@router.post("/{request_id}/reject", response_model=PermissionRequestRead, summary="Reject a permission request")
async def reject_request_endpoint(
    request_id: int,
    payload: ReviewRequest,
    request: Request,
    reviewer: PermissionManager,
    db: AsyncSession = Depends(get_session),
) -> PermissionRequestRead:
    try:
        perm_request = await db_manager.reject_request(
            db, reviewer, request_id, review_notes=payload.review_notes, request=request
        )
    except db_manager.PermissionRequestNotFoundError as exc:
        raise NotFoundError(str(exc)) from exc
    except db_manager.RequestAlreadyReviewedError as exc:
        raise ConflictError(str(exc)) from exc
    except users_db_manager.HierarchyError as exc:
        raise AuthorizationError(str(exc)) from exc

    return PermissionRequestRead.model_validate(perm_request)
