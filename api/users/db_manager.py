# api/users/db_manager.py
"""
Business logic for user administration.

Every mutation checks the role hierarchy against the stored target: the
caller's level must be strictly higher than the target's, and nobody acts on
themselves through these functions.
"""
from datetime import datetime, timezone

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from db_models.audit_log import AuditAction, AuditLevel, AuditLog
from db_models.user import FullRole, User, UserStatus
from core.audit import record_audit_event
from core.logging import get_logger
from core.permissions import (
    assignable_roles,
    can_manage_user,
    default_collection_permissions,
    is_allowed_status_transition,
    is_same_user,
    is_super_admin,
)
from core.principal import AuthenticatedUser, Collection, CollectionGrant, dump_grants
from core.security import generate_external_id, generate_random_password, get_password_hash
from . import queries

logger = get_logger(__name__)

# Collections only a super admin may hand out through overrides
RESTRICTED_OVERRIDE_COLLECTIONS = frozenset({Collection.USERS, Collection.SYSTEM})

STATUS_AUDIT_ACTIONS = {
    UserStatus.ACTIVE: AuditAction.USER_REACTIVATED,
    UserStatus.SUSPENDED: AuditAction.USER_SUSPENDED,
    UserStatus.DELETED: AuditAction.USER_DELETED,
}


class UserNotFoundError(Exception):
    """Raised when user doesn't exist."""
    pass


class DuplicateEmailError(Exception):
    pass


class HierarchyError(Exception):
    """Raised when the caller may not act on the target user."""
    pass


class InvalidStatusTransitionError(Exception):
    pass


class InvalidOverridesError(Exception):
    pass


async def get_user(db: AsyncSession, external_id: str) -> User:
    """Get a user by external id. Raises UserNotFoundError if not found."""
    result = await db.execute(queries.select_user_by_external_id(external_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFoundError(f"User {external_id} not found")
    return user


async def list_users(
    db: AsyncSession,
    role: FullRole | None = None,
    status: UserStatus | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[User], int]:
    role_value = role.value if role else None
    status_value = status.value if status else None

    result = await db.execute(
        queries.select_users(role_value, status_value, search, offset=(page - 1) * limit, limit=limit)
    )
    users = list(result.scalars().all())

    total_result = await db.execute(queries.count_users(role_value, status_value, search))
    total = total_result.scalar() or 0
    return users, total


async def user_stats(db: AsyncSession) -> dict:
    """Counts per status and per role, plus currently locked accounts."""
    by_status = {s.value: 0 for s in UserStatus}
    for status, count in (await db.execute(queries.count_users_by_status())).all():
        by_status[status] = count

    by_role = {r.value: 0 for r in FullRole}
    for role, count in (await db.execute(queries.count_users_by_role())).all():
        by_role[role] = count

    locked = (await db.execute(queries.count_locked_users(datetime.now(timezone.utc)))).scalar() or 0

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_role": by_role,
        "locked": locked,
    }


async def recent_activity(db: AsyncSession, external_id: str, limit: int = 5) -> list[AuditLog]:
    result = await db.execute(queries.select_recent_activity(external_id, limit))
    return list(result.scalars().all())


async def ensure_manageable(
    db: AsyncSession,
    caller: AuthenticatedUser,
    target: User,
    operation: str,
    request: Request | None,
) -> None:
    """Audit and raise HierarchyError unless `caller` may act on `target`."""
    if can_manage_user(caller, FullRole(target.full_role), target.external_id):
        return

    if is_same_user(caller, target.external_id):
        message = f"You cannot {operation} your own account"
    else:
        message = f"Role '{caller.full_role.value}' cannot {operation} a user with role '{target.full_role}'"

    logger.warning(
        "Role hierarchy violation",
        extra={"user_id": caller.external_id, "target_user_id": target.external_id, "operation": operation},
    )
    await record_audit_event(
        db,
        AuditAction.UNAUTHORIZED_ACCESS_ATTEMPT,
        actor=caller,
        target_user_id=target.external_id,
        resource="users",
        resource_id=target.external_id,
        details={"operation": operation},
        request=request,
        success=False,
        error_message=message,
        level=AuditLevel.WARNING,
    )
    raise HierarchyError(message)


async def invite_user(
    db: AsyncSession,
    caller: AuthenticatedUser,
    email: str,
    display_name: str,
    full_role: FullRole,
    department: str | None = None,
    request: Request | None = None,
) -> tuple[User, str]:
    """
    Create an INVITED user with a temporary password.

    Returns:
        The new user and the temporary password to hand over

    Raises:
        HierarchyError: If `full_role` is not assignable by the caller
        DuplicateEmailError: If the email is taken
    """
    if full_role not in assignable_roles(caller):
        raise HierarchyError(f"Role '{caller.full_role.value}' cannot assign role '{full_role.value}'")

    result = await db.execute(queries.select_user_by_email(email))
    if result.scalar_one_or_none() is not None:
        raise DuplicateEmailError("Email already registered")

    temp_password = generate_random_password()
    user = User(
        external_id=generate_external_id(),
        email=email.strip().lower(),
        hashed_password=get_password_hash(temp_password),
        display_name=display_name,
        department=department,
        full_role=full_role.value,
        status=UserStatus.INVITED.value,
        collection_permissions=dump_grants(default_collection_permissions(full_role)),
        permission_overrides=[],
        login_attempts=0,
        created_by_id=caller.id,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    await record_audit_event(
        db,
        AuditAction.INVITATION_SENT,
        actor=caller,
        target_user_id=user.external_id,
        resource="users",
        resource_id=user.external_id,
        details={"role": full_role.value},
        request=request,
    )
    return user, temp_password


async def change_role(
    db: AsyncSession,
    caller: AuthenticatedUser,
    external_id: str,
    new_role: FullRole,
    reason: str | None = None,
    request: Request | None = None,
) -> User:
    """
    Move a user to `new_role`. The role's default grants replace the stored
    ones and existing overrides are cleared.

    Raises:
        UserNotFoundError, HierarchyError
    """
    user = await get_user(db, external_id)
    await ensure_manageable(db, caller, user, "change the role of", request)

    if new_role not in assignable_roles(caller):
        raise HierarchyError(f"Role '{caller.full_role.value}' cannot assign role '{new_role.value}'")

    previous = user.full_role
    now = datetime.now(timezone.utc)
    user.full_role = new_role.value
    user.collection_permissions = dump_grants(default_collection_permissions(new_role))
    user.permission_overrides = []
    user.last_role_change = {
        "from": previous,
        "to": new_role.value,
        "changed_by": caller.external_id,
        "changed_at": now.isoformat(),
        "reason": reason,
    }
    await db.commit()
    await db.refresh(user)

    await record_audit_event(
        db,
        AuditAction.USER_ROLE_CHANGED,
        actor=caller,
        target_user_id=user.external_id,
        resource="users",
        resource_id=user.external_id,
        details={"from": previous, "to": new_role.value, "reason": reason},
        request=request,
        level=AuditLevel.WARNING,
    )
    return user


async def change_status(
    db: AsyncSession,
    caller: AuthenticatedUser,
    external_id: str,
    new_status: UserStatus,
    reason: str | None = None,
    request: Request | None = None,
) -> User:
    """
    Administrative status change. Deleting is reserved to super admins.

    Raises:
        UserNotFoundError, HierarchyError, InvalidStatusTransitionError
    """
    user = await get_user(db, external_id)
    await ensure_manageable(db, caller, user, "change the status of", request)

    current = UserStatus(user.status)
    if new_status == UserStatus.DELETED and not is_super_admin(caller):
        raise HierarchyError("Only a super admin can delete users")
    if not is_allowed_status_transition(current, new_status):
        raise InvalidStatusTransitionError(
            f"Cannot change status from {current.value} to {new_status.value}"
        )

    user.status = new_status.value
    if new_status == UserStatus.ACTIVE:
        user.login_attempts = 0
        user.locked_until = None
    await db.commit()
    await db.refresh(user)

    await record_audit_event(
        db,
        STATUS_AUDIT_ACTIONS[new_status],
        actor=caller,
        target_user_id=user.external_id,
        resource="users",
        resource_id=user.external_id,
        details={"from": current.value, "to": new_status.value, "reason": reason},
        request=request,
        level=AuditLevel.INFO if new_status == UserStatus.ACTIVE else AuditLevel.WARNING,
    )
    return user


def _validate_overrides(caller: AuthenticatedUser, overrides: list[CollectionGrant]) -> None:
    seen: set[Collection] = set()
    for grant in overrides:
        if grant.collection in seen:
            raise InvalidOverridesError(f"Duplicate override for collection '{grant.collection.value}'")
        seen.add(grant.collection)
        if grant.collection in RESTRICTED_OVERRIDE_COLLECTIONS and not is_super_admin(caller):
            raise InvalidOverridesError(
                f"Only a super admin can grant access to '{grant.collection.value}'"
            )


async def set_permission_overrides(
    db: AsyncSession,
    caller: AuthenticatedUser,
    external_id: str,
    overrides: list[CollectionGrant],
    request: Request | None = None,
) -> User:
    """
    Replace the user's overrides. An override shadows the role default for
    its collection, whether it grants more or less.

    Raises:
        UserNotFoundError, HierarchyError, InvalidOverridesError
    """
    user = await get_user(db, external_id)
    await ensure_manageable(db, caller, user, "change the permissions of", request)
    _validate_overrides(caller, overrides)

    previous = list(user.permission_overrides or [])
    user.permission_overrides = dump_grants(overrides)
    await db.commit()
    await db.refresh(user)

    await record_audit_event(
        db,
        AuditAction.PERMISSIONS_CHANGED,
        actor=caller,
        target_user_id=user.external_id,
        resource="users",
        resource_id=user.external_id,
        details={"from": previous, "to": user.permission_overrides},
        request=request,
        level=AuditLevel.WARNING,
    )
    return user


async def unlock_user(
    db: AsyncSession,
    caller: AuthenticatedUser,
    external_id: str,
    request: Request | None = None,
) -> User:
    user = await get_user(db, external_id)
    await ensure_manageable(db, caller, user, "unlock", request)

    user.login_attempts = 0
    user.locked_until = None
    await db.commit()
    await db.refresh(user)

    await record_audit_event(
        db,
        AuditAction.USER_UNLOCKED,
        actor=caller,
        target_user_id=user.external_id,
        resource="users",
        resource_id=user.external_id,
        request=request,
    )
    return user


async def reset_password(
    db: AsyncSession,
    caller: AuthenticatedUser,
    external_id: str,
    request: Request | None = None,
) -> tuple[User, str]:
    """
    Replace the user's password with a temporary one and clear any lockout.

    Returns:
        The user and the temporary password to hand over

    Raises:
        UserNotFoundError, HierarchyError
    """
    user = await get_user(db, external_id)
    await ensure_manageable(db, caller, user, "reset the password of", request)

    temp_password = generate_random_password()
    user.hashed_password = get_password_hash(temp_password)
    user.login_attempts = 0
    user.locked_until = None
    await db.commit()
    await db.refresh(user)

    await record_audit_event(
        db,
        AuditAction.PASSWORD_RESET,
        actor=caller,
        target_user_id=user.external_id,
        resource="users",
        resource_id=user.external_id,
        request=request,
        level=AuditLevel.WARNING,
    )
    return user, temp_password
