# api/users/views.py
"""
User administration endpoints. System capabilities decide who gets in; the
role hierarchy decides which targets they may touch.
"""
import math

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_session
from db_models.user import FullRole, UserStatus
from core.deps import PermissionManager, RoleManager, SessionService, UserManager
from core.exceptions import AuthorizationError, BadRequestError, ConflictError, NotFoundError
from core.permissions import assignable_roles, available_actions
from .models import (
    ActivityEntry,
    InviteRequest,
    InviteResponse,
    Pagination,
    PasswordResetResponse,
    PermissionOverridesRequest,
    RoleChangeRequest,
    StatusChangeRequest,
    UserDetail,
    UserDetailResponse,
    UserListResponse,
    UserStatsResponse,
    UserSummary,
)
from . import db_manager

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=UserListResponse, summary="List users")
async def list_users_endpoint(
    admin: UserManager,
    db: AsyncSession = Depends(get_session),
    role: FullRole | None = None,
    user_status: UserStatus | None = Query(None, alias="status"),
    search: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> UserListResponse:
    """List users with optional role/status filters and a free-text search."""
    users, total = await db_manager.list_users(
        db, role=role, status=user_status, search=search, page=page, limit=limit
    )
    total_pages = math.ceil(total / limit) if total else 0
    return UserListResponse(
        users=[UserSummary.model_validate(u) for u in users],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        ),
    )


@router.get("/stats", response_model=UserStatsResponse, summary="User statistics")
async def user_stats_endpoint(
    admin: UserManager,
    db: AsyncSession = Depends(get_session),
) -> UserStatsResponse:
    stats = await db_manager.user_stats(db)
    return UserStatsResponse(**stats)


@router.get("/{external_id}", response_model=UserDetailResponse, summary="Get user details")
async def get_user_endpoint(
    external_id: str,
    admin: UserManager,
    db: AsyncSession = Depends(get_session),
) -> UserDetailResponse:
    """
    User details plus what the caller may do with this user. Lockout
    counters are hidden unless the caller may see sensitive info.
    """
    try:
        user = await db_manager.get_user(db, external_id)
    except db_manager.UserNotFoundError as exc:
        raise NotFoundError(str(exc)) from exc

    actions = available_actions(admin, FullRole(user.full_role), user.external_id)
    detail = UserDetail.model_validate(user)
    if not actions["can_view_sensitive_info"]:
        detail = detail.model_copy(update={"login_attempts": 0, "locked_until": None})

    activity = await db_manager.recent_activity(db, user.external_id)
    return UserDetailResponse(
        user=detail,
        available_actions=actions,
        assignable_roles=assignable_roles(admin),
        recent_activity=[ActivityEntry.model_validate(a) for a in activity],
    )


@router.post(
    "",
    response_model=InviteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a user",
)
async def invite_user_endpoint(
    payload: InviteRequest,
    request: Request,
    admin: UserManager,
    db: AsyncSession = Depends(get_session),
) -> InviteResponse:
    """Create an INVITED user with a temporary password and the role's default grants."""
    try:
        user, temp_password = await db_manager.invite_user(
            db,
            admin,
            email=payload.email,
            display_name=payload.display_name,
            full_role=payload.full_role,
            department=payload.department,
            request=request,
        )
    except db_manager.HierarchyError as exc:
        raise AuthorizationError(str(exc)) from exc
    except db_manager.DuplicateEmailError as exc:
        raise ConflictError(str(exc)) from exc

    return InviteResponse(user=UserSummary.model_validate(user), temporary_password=temp_password)


@router.put("/{external_id}/role", response_model=UserSummary, summary="Change a user's role")
async def change_role_endpoint(
    external_id: str,
    payload: RoleChangeRequest,
    request: Request,
    admin: RoleManager,
    service: SessionService,
    db: AsyncSession = Depends(get_session),
) -> UserSummary:
    try:
        user = await db_manager.change_role(
            db, admin, external_id, payload.full_role, reason=payload.reason, request=request
        )
    except db_manager.UserNotFoundError as exc:
        raise NotFoundError(str(exc)) from exc
    except db_manager.HierarchyError as exc:
        raise AuthorizationError(str(exc)) from exc

    await service.invalidate_user(external_id)
    return UserSummary.model_validate(user)


@router.put("/{external_id}/status", response_model=UserSummary, summary="Change a user's status")
async def change_status_endpoint(
    external_id: str,
    payload: StatusChangeRequest,
    request: Request,
    admin: UserManager,
    service: SessionService,
    db: AsyncSession = Depends(get_session),
) -> UserSummary:
    """Suspend, delete (soft) or reactivate a user."""
    try:
        user = await db_manager.change_status(
            db, admin, external_id, payload.status, reason=payload.reason, request=request
        )
    except db_manager.UserNotFoundError as exc:
        raise NotFoundError(str(exc)) from exc
    except db_manager.HierarchyError as exc:
        raise AuthorizationError(str(exc)) from exc
    except db_manager.InvalidStatusTransitionError as exc:
        raise BadRequestError(str(exc)) from exc

    await service.invalidate_user(external_id)
    return UserSummary.model_validate(user)


@router.put(
    "/{external_id}/permissions",
    response_model=UserSummary,
    summary="Replace a user's permission overrides",
)
async def set_permissions_endpoint(
    external_id: str,
    payload: PermissionOverridesRequest,
    request: Request,
    admin: PermissionManager,
    service: SessionService,
    db: AsyncSession = Depends(get_session),
) -> UserSummary:
    try:
        user = await db_manager.set_permission_overrides(
            db, admin, external_id, payload.permission_overrides, request=request
        )
    except db_manager.UserNotFoundError as exc:
        raise NotFoundError(str(exc)) from exc
    except db_manager.HierarchyError as exc:
        raise AuthorizationError(str(exc)) from exc
    except db_manager.InvalidOverridesError as exc:
        raise BadRequestError(str(exc)) from exc

    await service.invalidate_user(external_id)
    return UserSummary.model_validate(user)


@router.post("/{external_id}/unlock", response_model=UserSummary, summary="Clear a login lockout")
async def unlock_user_endpoint(
    external_id: str,
    request: Request,
    admin: UserManager,
    db: AsyncSession = Depends(get_session),
) -> UserSummary:
    try:
        user = await db_manager.unlock_user(db, admin, external_id, request=request)
    except db_manager.UserNotFoundError as exc:
        raise NotFoundError(str(exc)) from exc
    except db_manager.HierarchyError as exc:
        raise AuthorizationError(str(exc)) from exc

    return UserSummary.model_validate(user)


@router.post(
    "/{external_id}/reset-password",
    response_model=PasswordResetResponse,
    summary="Issue a temporary password",
)
async def reset_password_endpoint(
    external_id: str,
    request: Request,
    admin: UserManager,
    service: SessionService,
    db: AsyncSession = Depends(get_session),
) -> PasswordResetResponse:
    """The old password stops working at once and every cached session of the user is dropped."""
    try:
        user, temp_password = await db_manager.reset_password(db, admin, external_id, request=request)
    except db_manager.UserNotFoundError as exc:
        raise NotFoundError(str(exc)) from exc
    except db_manager.HierarchyError as exc:
        raise AuthorizationError(str(exc)) from exc

    await service.invalidate_user(external_id)
    return PasswordResetResponse(user=UserSummary.model_validate(user), temporary_password=temp_password)
