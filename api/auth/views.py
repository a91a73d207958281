# api/auth/views.py
"""
Authentication endpoints: register, login/logout, session checks and the
caller's own profile.
"""
import asyncio
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db import get_session
from core.deps import Credential, CurrentUser, SessionService, SettingsAdmin
from core.exceptions import (
    AuthenticationError,
    BadRequestError,
    ConflictError,
    ErrorKind,
    LockedError,
    LoginTimeoutError,
    NotFoundError,
    error_for_validation_failure,
)
from core.logging import get_logger
from core.permissions import (
    SystemCapability,
    accessible_collections,
    actions_for_collection,
    has_system_capability,
    is_super_admin,
    is_system_admin,
)
from core.principal import AuthenticatedUser
from core.session_service import SessionValidationService, ValidationResult
from .models import (
    LoginRequest,
    MeResponse,
    PasswordChange,
    PermissionSummary,
    ProfileUpdate,
    RegisterRequest,
    SessionMetricsResponse,
    SessionResponse,
    UserProfile,
)
from . import db_manager

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


async def _login(
    db: AsyncSession,
    service: SessionValidationService,
    email: str,
    password: str,
    remember_me: bool,
    request: Request,
    response: Response,
) -> SessionResponse:
    """Run the login flow under the LOGIN_TIMEOUT_SECONDS ceiling and set the session cookie."""
    lifetime = timedelta(
        days=settings.SESSION_REMEMBER_DAYS if remember_me else settings.SESSION_EXPIRES_DAYS
    )

    async def flow():
        user = await db_manager.authenticate(db, email, password, request=request)
        token = service.identity_provider.issue_session_token(
            user.external_id,
            claims={"email": user.email, "role": user.full_role},
            expires_delta=lifetime,
        )
        return user, token

    try:
        user, token = await asyncio.wait_for(flow(), timeout=settings.LOGIN_TIMEOUT_SECONDS)
    except asyncio.TimeoutError as exc:
        logger.warning("Login timed out", extra={"email": email})
        raise LoginTimeoutError() from exc
    except db_manager.InvalidCredentialsError as exc:
        raise AuthenticationError(ErrorKind.INVALID_CREDENTIALS, str(exc)) from exc
    except db_manager.AccountLockedError as exc:
        raise LockedError(str(exc)) from exc
    except db_manager.AccountBlockedError as exc:
        raise AuthenticationError(ErrorKind.SUSPENDED, str(exc)) from exc

    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=int(lifetime.total_seconds()),
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    return SessionResponse(
        access_token=token,
        expires_at=datetime.now(timezone.utc) + lifetime,
        user=UserProfile.model_validate(user),
    )


@router.post(
    "/register",
    response_model=UserProfile,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
)
async def register(
    payload: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> UserProfile:
    """Create the local user record for a new identity (USER role, default grants)."""
    try:
        user = await db_manager.register_user(
            db,
            email=payload.email,
            password=payload.password,
            display_name=payload.display_name,
            request=request,
        )
    except db_manager.EmailAlreadyRegisteredError as exc:
        raise ConflictError(str(exc)) from exc

    return UserProfile.model_validate(user)


@router.post("/login", response_model=SessionResponse, summary="Login and get a session")
async def login(
    request: Request,
    response: Response,
    service: SessionService,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_session),
) -> SessionResponse:
    """
    OAuth2 compatible login endpoint.
    Returns the session credential and also sets it as the session cookie.
    """
    return await _login(db, service, form_data.username, form_data.password, False, request, response)


@router.post("/login/json", response_model=SessionResponse, summary="Login with JSON body")
async def login_json(
    credentials: LoginRequest,
    request: Request,
    response: Response,
    service: SessionService,
    db: AsyncSession = Depends(get_session),
) -> SessionResponse:
    """
    Alternative login endpoint accepting JSON body.
    Useful for SPAs and mobile apps.
    """
    return await _login(
        db, service, credentials.email, credentials.password, credentials.remember_me, request, response
    )


@router.post("/logout", summary="End the current session")
async def logout(
    request: Request,
    response: Response,
    current_user: CurrentUser,
    credential: Credential,
    service: SessionService,
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Drop the cached validation, revoke the credential and clear the cookie."""
    await service.invalidate(credential)
    await service.identity_provider.revoke(credential)
    await db_manager.record_logout(db, current_user, request=request)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"message": "Logged out successfully"}


@router.post(
    "/verify",
    response_model=ValidationResult,
    response_model_exclude={"user"},
    summary="Validate a session credential",
)
async def verify(credential: Credential, service: SessionService) -> ValidationResult:
    """Ad-hoc validation. Never changes the user record."""
    result = await service.validate(credential)
    if not result.valid:
        raise error_for_validation_failure(
            result.error or ErrorKind.VERIFICATION_FAILED,
            result.message or "Could not validate credentials",
        )
    return result


def permission_summary(user: AuthenticatedUser) -> PermissionSummary:
    collections = {
        collection.value: sorted(action.value for action in actions_for_collection(user, collection))
        for collection in sorted(accessible_collections(user), key=lambda c: c.value)
    }
    return PermissionSummary(
        collections=collections,
        capabilities=[cap.value for cap in SystemCapability if has_system_capability(user, cap)],
        is_system_admin=is_system_admin(user),
        is_super_admin=is_super_admin(user),
    )


@router.get("/me", response_model=MeResponse, summary="Get current user")
async def get_me(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> MeResponse:
    """Get the current authenticated user's profile and effective permissions."""
    try:
        user = await db_manager.get_user_by_external_id(db, current_user.external_id)
    except db_manager.UserNotFoundError as exc:
        raise NotFoundError(str(exc)) from exc

    return MeResponse(
        user=UserProfile.model_validate(user),
        permissions=permission_summary(current_user),
    )


@router.put("/me", response_model=UserProfile, summary="Update current user profile")
async def update_me(
    updates: ProfileUpdate,
    request: Request,
    current_user: CurrentUser,
    service: SessionService,
    db: AsyncSession = Depends(get_session),
) -> UserProfile:
    """
    Update the caller's own profile.
    Role, status and permissions can only be changed by an administrator.
    """
    changes = updates.model_dump(exclude_unset=True)
    if not changes:
        raise BadRequestError("No profile fields to update")

    try:
        user = await db_manager.update_profile(db, current_user.external_id, changes, request=request)
    except db_manager.UserNotFoundError as exc:
        raise NotFoundError(str(exc)) from exc

    # Cached snapshots still carry the old profile
    await service.invalidate_user(current_user.external_id)
    return UserProfile.model_validate(user)


@router.post("/me/password", summary="Change password")
async def change_password(
    payload: PasswordChange,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Change the current user's password."""
    try:
        await db_manager.change_password(
            db,
            current_user.external_id,
            payload.current_password,
            payload.new_password,
        )
    except db_manager.IncorrectPasswordError as exc:
        raise BadRequestError(str(exc)) from exc
    except db_manager.UserNotFoundError as exc:
        raise NotFoundError(str(exc)) from exc

    return {"message": "Password changed successfully"}


@router.get("/session-metrics", response_model=SessionMetricsResponse, summary="Session cache metrics")
async def get_session_metrics(admin: SettingsAdmin, service: SessionService) -> SessionMetricsResponse:
    health = await service.health_check()
    return SessionMetricsResponse(metrics=service.metrics(), health=health)


@router.post("/session-metrics", response_model=SessionMetricsResponse, summary="Reset session cache metrics")
async def reset_session_metrics(admin: SettingsAdmin, service: SessionService) -> SessionMetricsResponse:
    service.reset_metrics()
    logger.info("Session metrics reset", extra={"user_id": admin.external_id})
    health = await service.health_check()
    return SessionMetricsResponse(metrics=service.metrics(), health=health)
