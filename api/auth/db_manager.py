# api/auth/db_manager.py
"""
Business logic for registration, login and self-service profile changes.
"""
from datetime import datetime, timedelta, timezone

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models.audit_log import AuditAction, AuditLevel
from db_models.user import FullRole, User, UserStatus
from core.audit import record_audit_event
from core.logging import get_logger
from core.permissions import default_collection_permissions
from core.principal import AuthenticatedUser, dump_grants
from core.security import (
    generate_external_id,
    get_password_hash,
    verify_password,
)
from . import queries

logger = get_logger(__name__)


class InvalidCredentialsError(Exception):
    """Raised when email or password is wrong."""
    pass


class AccountLockedError(Exception):
    """Raised while the account is inside its lockout window."""

    def __init__(self, locked_until: datetime | None):
        super().__init__("Account is temporarily locked due to too many failed login attempts")
        self.locked_until = locked_until


class AccountBlockedError(Exception):
    """Raised for suspended or deleted accounts."""
    pass


class EmailAlreadyRegisteredError(Exception):
    pass


class IncorrectPasswordError(Exception):
    pass


class UserNotFoundError(Exception):
    pass


async def get_user_by_external_id(db: AsyncSession, external_id: str) -> User:
    result = await db.execute(queries.select_user_by_external_id(external_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFoundError(f"User {external_id} not found")
    return user


async def register_user(
    db: AsyncSession,
    email: str,
    password: str,
    display_name: str,
    request: Request | None = None,
) -> User:
    """
    Create the local record for a new identity: USER role, ACTIVE, role
    default grants.

    Raises:
        EmailAlreadyRegisteredError: If the email is taken
    """
    result = await db.execute(queries.select_user_by_email(email))
    if result.scalar_one_or_none() is not None:
        raise EmailAlreadyRegisteredError("Email already registered")

    user = User(
        external_id=generate_external_id(),
        email=email.strip().lower(),
        hashed_password=get_password_hash(password),
        display_name=display_name,
        full_role=FullRole.USER.value,
        status=UserStatus.ACTIVE.value,
        collection_permissions=dump_grants(default_collection_permissions(FullRole.USER)),
        permission_overrides=[],
        login_attempts=0,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    await record_audit_event(
        db,
        AuditAction.USER_REGISTERED,
        actor=AuthenticatedUser.from_user(user),
        target_user_id=user.external_id,
        request=request,
    )
    return user


async def authenticate(
    db: AsyncSession,
    email: str,
    password: str,
    request: Request | None = None,
    now: datetime | None = None,
) -> User:
    """
    Login flow up to (not including) issuing the session credential.

    Lockout is checked before the password, so a locked account is refused
    even with the right password. Failed attempts are counted; reaching
    MAX_LOGIN_ATTEMPTS locks the account for LOCKOUT_MINUTES. A success
    resets the counters, stamps `last_login_at` and moves INVITED to ACTIVE.

    Raises:
        InvalidCredentialsError: Unknown email or wrong password
        AccountLockedError: `locked_until` lies in the future
        AccountBlockedError: SUSPENDED or DELETED account
    """
    now = now or datetime.now(timezone.utc)

    result = await db.execute(queries.select_user_by_email(email))
    user = result.scalar_one_or_none()
    if user is None:
        await record_audit_event(
            db,
            AuditAction.LOGIN_FAILED,
            actor_email=email,
            request=request,
            success=False,
            error_message="Unknown email",
            level=AuditLevel.WARNING,
        )
        raise InvalidCredentialsError("Incorrect email or password")

    if user.is_locked(now):
        await record_audit_event(
            db,
            AuditAction.LOGIN_FAILED,
            actor=AuthenticatedUser.from_user(user),
            request=request,
            success=False,
            error_message="Account locked",
            level=AuditLevel.WARNING,
        )
        raise AccountLockedError(user.locked_until)

    if user.is_blocked():
        raise AccountBlockedError("Account suspended or deleted")

    if not verify_password(password, user.hashed_password):
        await _register_failed_attempt(db, user, now, request)
        raise InvalidCredentialsError("Incorrect email or password")

    user.login_attempts = 0
    user.locked_until = None
    user.last_login_at = now
    if user.status == UserStatus.INVITED.value:
        user.status = UserStatus.ACTIVE.value
        logger.info("Invited user activated on first login", extra={"user_id": user.external_id})
    await db.commit()
    await db.refresh(user)

    await record_audit_event(
        db,
        AuditAction.USER_LOGIN,
        actor=AuthenticatedUser.from_user(user),
        request=request,
    )
    return user


async def _register_failed_attempt(
    db: AsyncSession,
    user: User,
    now: datetime,
    request: Request | None,
) -> None:
    user.login_attempts = (user.login_attempts or 0) + 1
    locked = user.login_attempts >= settings.MAX_LOGIN_ATTEMPTS
    if locked:
        user.locked_until = now + timedelta(minutes=settings.LOCKOUT_MINUTES)
        user.login_attempts = 0
    await db.commit()
    await db.refresh(user)

    actor = AuthenticatedUser.from_user(user)
    await record_audit_event(
        db,
        AuditAction.LOGIN_FAILED,
        actor=actor,
        request=request,
        success=False,
        error_message="Incorrect password",
        level=AuditLevel.WARNING,
    )
    if locked:
        logger.warning("Account locked after failed logins", extra={"user_id": user.external_id})
        await record_audit_event(
            db,
            AuditAction.ACCOUNT_LOCKED,
            actor=actor,
            details={"locked_until": user.locked_until.isoformat()},
            request=request,
            success=False,
            level=AuditLevel.CRITICAL,
        )


async def update_profile(
    db: AsyncSession,
    external_id: str,
    changes: dict,
    request: Request | None = None,
) -> User:
    """Apply self-service profile fields. Role, status and grants are not reachable here."""
    user = await get_user_by_external_id(db, external_id)
    for field, value in changes.items():
        setattr(user, field, value)
    await db.commit()
    await db.refresh(user)

    await record_audit_event(
        db,
        AuditAction.USER_UPDATED,
        actor=AuthenticatedUser.from_user(user),
        target_user_id=user.external_id,
        details={"fields": sorted(changes)},
        request=request,
    )
    return user


async def change_password(
    db: AsyncSession,
    external_id: str,
    current_password: str,
    new_password: str,
) -> User:
    """
    Raises:
        IncorrectPasswordError: If `current_password` does not match
    """
    user = await get_user_by_external_id(db, external_id)
    if not verify_password(current_password, user.hashed_password):
        raise IncorrectPasswordError("Current password is incorrect")

    user.hashed_password = get_password_hash(new_password)
    await db.commit()
    await db.refresh(user)
    return user


async def record_logout(db: AsyncSession, user: AuthenticatedUser, request: Request | None = None) -> None:
    await record_audit_event(db, AuditAction.USER_LOGOUT, actor=user, request=request)
