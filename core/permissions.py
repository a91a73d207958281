# core/permissions.py
"""
Role and capability permission model.

Two independent axes:

* Collection access: a user holds at most one effective sub-role per
  collection. `permission_overrides` are looked up before the role defaults in
  `collection_permissions`; the first match wins and nothing is merged.
* System capabilities: decided by the full role alone. A COLLECTION_ADMIN
  grant, on any collection, never reaches them.

The tables below are the only place that lists actions, collections or
capabilities per role.
"""
from enum import Enum
from typing import Iterable

from db_models.user import FullRole, UserStatus
from .principal import AuthenticatedUser, Collection, CollectionGrant, SubRole


class Action(str, Enum):
    """Operations on a collection's content."""
    VIEW = "view"
    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"
    MODERATE = "moderate"
    MANAGE = "manage"


class SystemCapability(str, Enum):
    """Privileged operations that are not scoped to a collection."""
    MANAGE_USERS = "manage_users"
    MANAGE_ROLES = "manage_roles"
    VIEW_AUDIT_TRAIL = "view_audit_trail"
    SYSTEM_SETTINGS = "system_settings"
    DATABASE_ACCESS = "database_access"
    SECURITY_SETTINGS = "security_settings"
    USER_PERMISSIONS = "user_permissions"


SUB_ROLE_ORDER: tuple[SubRole, ...] = (
    SubRole.OBSERVER,
    SubRole.CONTRIBUTOR,
    SubRole.MODERATOR,
    SubRole.COLLECTION_ADMIN,
)

SUB_ROLE_ACTIONS: dict[SubRole, frozenset[Action]] = {
    SubRole.OBSERVER: frozenset({Action.VIEW}),
    SubRole.CONTRIBUTOR: frozenset({Action.VIEW, Action.ADD, Action.EDIT}),
    SubRole.MODERATOR: frozenset({Action.VIEW, Action.ADD, Action.EDIT, Action.MODERATE}),
    SubRole.COLLECTION_ADMIN: frozenset(Action),
}

CONTENT_COLLECTIONS: tuple[Collection, ...] = tuple(
    c for c in Collection if c not in (Collection.USERS, Collection.SYSTEM)
)

FULL_ROLE_COLLECTIONS: dict[FullRole, frozenset[Collection]] = {
    FullRole.SUPER_ADMIN: frozenset(Collection),
    FullRole.ADMIN: frozenset(CONTENT_COLLECTIONS) | {Collection.USERS},
    FullRole.AGENT: frozenset({Collection.PROJECTS, Collection.PROPERTIES}),
    FullRole.MARKETING: frozenset({Collection.BLOGS, Collection.NEWS}),
    FullRole.SALES: frozenset({
        Collection.PROPERTIES,
        Collection.PLOTS,
        Collection.BUILDINGS,
        Collection.HOTELS,
        Collection.MALLS,
    }),
    FullRole.HR: frozenset({Collection.CAREERS, Collection.DEVELOPERS}),
    FullRole.COMMUNITY_MANAGER: frozenset({Collection.COMMUNITIES}),
    FullRole.USER: frozenset({Collection.PROJECTS}),
}

FULL_ROLE_DEFAULT_SUB_ROLES: dict[FullRole, SubRole] = {
    FullRole.SUPER_ADMIN: SubRole.COLLECTION_ADMIN,
    FullRole.ADMIN: SubRole.COLLECTION_ADMIN,
    FullRole.AGENT: SubRole.CONTRIBUTOR,
    FullRole.MARKETING: SubRole.CONTRIBUTOR,
    FullRole.SALES: SubRole.CONTRIBUTOR,
    FullRole.HR: SubRole.MODERATOR,
    FullRole.COMMUNITY_MANAGER: SubRole.MODERATOR,
    FullRole.USER: SubRole.OBSERVER,
}

SYSTEM_ADMIN_ROLES: frozenset[FullRole] = frozenset({FullRole.SUPER_ADMIN, FullRole.ADMIN})

ADMIN_CAPABILITIES: frozenset[SystemCapability] = frozenset({
    SystemCapability.MANAGE_USERS,
    SystemCapability.MANAGE_ROLES,
    SystemCapability.USER_PERMISSIONS,
})

ROLE_LEVELS: dict[FullRole, int] = {
    FullRole.USER: 1,
    FullRole.AGENT: 2,
    FullRole.MARKETING: 2,
    FullRole.SALES: 2,
    FullRole.HR: 2,
    FullRole.COMMUNITY_MANAGER: 2,
    FullRole.ADMIN: 3,
    FullRole.SUPER_ADMIN: 4,
}


def _check_tables() -> None:
    """Fail at import time if a table misses an enum member or breaks ordering."""
    for name, table, enum in (
        ("SUB_ROLE_ACTIONS", SUB_ROLE_ACTIONS, SubRole),
        ("FULL_ROLE_COLLECTIONS", FULL_ROLE_COLLECTIONS, FullRole),
        ("FULL_ROLE_DEFAULT_SUB_ROLES", FULL_ROLE_DEFAULT_SUB_ROLES, FullRole),
        ("ROLE_LEVELS", ROLE_LEVELS, FullRole),
    ):
        missing = set(enum) - set(table)
        if missing:
            raise RuntimeError(f"{name} is missing entries for {sorted(m.value for m in missing)}")

    if set(SUB_ROLE_ORDER) != set(SubRole):
        raise RuntimeError("SUB_ROLE_ORDER must list every sub-role exactly once")

    for lower, higher in zip(SUB_ROLE_ORDER, SUB_ROLE_ORDER[1:]):
        if not SUB_ROLE_ACTIONS[lower] <= SUB_ROLE_ACTIONS[higher]:
            raise RuntimeError(f"{higher.value} must allow every action of {lower.value}")


_check_tables()


# ---------- Tables ----------

def actions_for(sub_role: SubRole) -> frozenset[Action]:
    return SUB_ROLE_ACTIONS[sub_role]


def default_collections(full_role: FullRole) -> frozenset[Collection]:
    return FULL_ROLE_COLLECTIONS[full_role]


def default_sub_role(full_role: FullRole) -> SubRole:
    return FULL_ROLE_DEFAULT_SUB_ROLES[full_role]


def default_collection_permissions(full_role: FullRole) -> list[CollectionGrant]:
    """Grants stored on a user created with, or moved to, `full_role`."""
    sub_role = default_sub_role(full_role)
    collections = default_collections(full_role)
    # Keep enum declaration order so the stored list is stable
    return [
        CollectionGrant(collection=collection, sub_role=sub_role)
        for collection in Collection
        if collection in collections
    ]


# ---------- Collection checks ----------

def _find_grant(grants: Iterable[CollectionGrant], collection: Collection) -> CollectionGrant | None:
    for grant in grants:
        if grant.collection == collection:
            return grant
    return None


def sub_role_for(user: AuthenticatedUser, collection: Collection) -> SubRole | None:
    """Effective sub-role: override first, then role default, else none."""
    grant = _find_grant(user.permission_overrides, collection)
    if grant is None:
        grant = _find_grant(user.collection_permissions, collection)
    return grant.sub_role if grant is not None else None


def actions_for_collection(user: AuthenticatedUser, collection: Collection) -> frozenset[Action]:
    sub_role = sub_role_for(user, collection)
    if sub_role is None:
        return frozenset()
    return actions_for(sub_role)


def has_collection_permission(user: AuthenticatedUser, collection: Collection, action: Action) -> bool:
    return action in actions_for_collection(user, collection)


def accessible_collections(user: AuthenticatedUser) -> frozenset[Collection]:
    return frozenset(
        grant.collection
        for grant in (*user.collection_permissions, *user.permission_overrides)
    )


# ---------- System checks ----------

def is_system_admin(user: AuthenticatedUser) -> bool:
    return user.full_role in SYSTEM_ADMIN_ROLES


def is_super_admin(user: AuthenticatedUser) -> bool:
    return user.full_role == FullRole.SUPER_ADMIN


def has_system_capability(user: AuthenticatedUser, capability: SystemCapability) -> bool:
    """Only the full role is consulted. Collection grants and overrides are never read here."""
    if not is_system_admin(user):
        return False
    if is_super_admin(user):
        return True
    return capability in ADMIN_CAPABILITIES


# ---------- Role hierarchy ----------

def role_level(full_role: FullRole) -> int:
    return ROLE_LEVELS[full_role]


def is_same_user(caller: AuthenticatedUser, target_external_id: str) -> bool:
    return caller.external_id == target_external_id


def can_manage_user(caller: AuthenticatedUser, target_role: FullRole, target_external_id: str) -> bool:
    """
    Role, status and permission changes need a strictly lower target level.
    Acting on oneself is always refused here; self edits go through the
    profile endpoints with their narrower field set.
    """
    if is_same_user(caller, target_external_id):
        return False
    return role_level(target_role) < role_level(caller.full_role)


def assignable_roles(caller: AuthenticatedUser) -> list[FullRole]:
    """Roles `caller` may hand out when inviting or re-roling someone."""
    if is_super_admin(caller):
        return [role for role in FullRole if role != FullRole.SUPER_ADMIN]
    caller_level = role_level(caller.full_role)
    return [role for role in FullRole if role_level(role) < caller_level]


def available_actions(caller: AuthenticatedUser, target_role: FullRole, target_external_id: str) -> dict[str, bool]:
    """Flags the user-management screen uses to enable its buttons."""
    is_self = is_same_user(caller, target_external_id)
    lower = role_level(target_role) < role_level(caller.full_role)
    manages = lower and not is_self and has_system_capability(caller, SystemCapability.MANAGE_USERS)

    return {
        "can_edit": manages,
        "can_delete": manages and is_super_admin(caller),
        "can_change_role": manages and has_system_capability(caller, SystemCapability.MANAGE_ROLES),
        "can_change_status": manages,
        "can_manage_permissions": manages and has_system_capability(caller, SystemCapability.USER_PERMISSIONS),
        "can_view_sensitive_info": is_super_admin(caller) or is_self or lower,
        "can_reset_password": manages or is_self,
        "can_unlock": manages,
    }


# ---------- Status transitions ----------

ADMIN_STATUS_TRANSITIONS: dict[UserStatus, frozenset[UserStatus]] = {
    UserStatus.INVITED: frozenset({UserStatus.ACTIVE, UserStatus.SUSPENDED, UserStatus.DELETED}),
    UserStatus.ACTIVE: frozenset({UserStatus.SUSPENDED, UserStatus.DELETED}),
    UserStatus.SUSPENDED: frozenset({UserStatus.ACTIVE, UserStatus.DELETED}),
    UserStatus.DELETED: frozenset({UserStatus.ACTIVE}),
}


def is_allowed_status_transition(current: UserStatus, new: UserStatus) -> bool:
    """Administrative transitions. INVITED->ACTIVE also happens on first login."""
    return new in ADMIN_STATUS_TRANSITIONS[current]
