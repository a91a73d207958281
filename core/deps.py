# core/deps.py
"""
FastAPI dependencies for authentication and authorization.

Every protected route depends on one guard built by
`require_collection_permission` or `require_system_capability`; the handler
only runs once the session is valid and the permission check passed.
"""
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db import get_session
from db_models.audit_log import AuditAction, AuditLevel
from core.audit import record_audit_event
from core.exceptions import AuthorizationError, ErrorKind, ServiceError, error_for_validation_failure
from core.logging import get_logger
from core.permissions import (
    Action,
    SystemCapability,
    has_collection_permission,
    has_system_capability,
)
from core.principal import AuthenticatedUser, Collection
from core.session_service import SessionValidationService

logger = get_logger(__name__)

# OAuth2 scheme for token extraction from Authorization header
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def get_session_service(request: Request) -> SessionValidationService:
    """The service built by the application lifespan."""
    service = getattr(request.app.state, "session_service", None)
    if service is None:
        raise ServiceError("Session service is not available")
    return service


SessionService = Annotated[SessionValidationService, Depends(get_session_service)]


async def get_credential(
    request: Request,
    token: Annotated[str | None, Depends(oauth2_scheme)],
) -> str | None:
    """Bearer header first, then the session cookie."""
    if token:
        return token
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


Credential = Annotated[str | None, Depends(get_credential)]


async def get_current_user(
    request: Request,
    credential: Credential,
    service: SessionService,
) -> AuthenticatedUser:
    """
    Dependency resolving the caller from the session credential.

    Raises:
        AuthenticationError: 401 carrying the validation error kind
        ServiceError: 500 when validation failed internally
    """
    result = await service.validate(credential)
    if not result.valid or result.user is None:
        kind = result.error or ErrorKind.VERIFICATION_FAILED
        logger.info("Session rejected", extra={"kind": kind.value, "path": request.url.path})
        raise error_for_validation_failure(kind, result.message or "Could not validate credentials")

    request.state.user = result.user
    return result.user


CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]


async def _deny(
    db: AsyncSession,
    request: Request,
    user: AuthenticatedUser,
    required: str,
) -> AuthorizationError:
    message = f"Permission '{required}' required; role '{user.full_role.value}' does not grant it"
    logger.warning(
        "Access denied",
        extra={
            "user_id": user.external_id,
            "role": user.full_role.value,
            "required": required,
            "path": request.url.path,
        },
    )
    await record_audit_event(
        db,
        AuditAction.UNAUTHORIZED_ACCESS_ATTEMPT,
        actor=user,
        resource=required,
        details={"method": request.method, "path": request.url.path},
        request=request,
        success=False,
        error_message=message,
        level=AuditLevel.WARNING,
    )
    return AuthorizationError(message)


def require_collection_permission(collection: Collection, action: Action):
    """Build a guard allowing `action` on `collection`."""

    async def guard(
        request: Request,
        user: CurrentUser,
        db: AsyncSession = Depends(get_session),
    ) -> AuthenticatedUser:
        if not has_collection_permission(user, collection, action):
            raise await _deny(db, request, user, f"{collection.value}:{action.value}")
        return user

    guard.__name__ = f"require_{collection.value}_{action.value}"
    return guard


def require_system_capability(capability: SystemCapability):
    """Build a guard for a system capability. Only the full role counts."""

    async def guard(
        request: Request,
        user: CurrentUser,
        db: AsyncSession = Depends(get_session),
    ) -> AuthenticatedUser:
        if not has_system_capability(user, capability):
            raise await _deny(db, request, user, capability.value)
        return user

    guard.__name__ = f"require_{capability.value}"
    return guard


# Type aliases for cleaner endpoint signatures
UserManager = Annotated[AuthenticatedUser, Depends(require_system_capability(SystemCapability.MANAGE_USERS))]
RoleManager = Annotated[AuthenticatedUser, Depends(require_system_capability(SystemCapability.MANAGE_ROLES))]
PermissionManager = Annotated[AuthenticatedUser, Depends(require_system_capability(SystemCapability.USER_PERMISSIONS))]
AuditViewer = Annotated[AuthenticatedUser, Depends(require_system_capability(SystemCapability.VIEW_AUDIT_TRAIL))]
SettingsAdmin = Annotated[AuthenticatedUser, Depends(require_system_capability(SystemCapability.SYSTEM_SETTINGS))]
