import pytest

from db_models.user import FullRole, UserStatus
from core.permissions import (
    ADMIN_CAPABILITIES,
    CONTENT_COLLECTIONS,
    SUB_ROLE_ORDER,
    Action,
    SystemCapability,
    accessible_collections,
    actions_for,
    assignable_roles,
    available_actions,
    can_manage_user,
    default_collection_permissions,
    default_collections,
    default_sub_role,
    has_collection_permission,
    has_system_capability,
    is_allowed_status_transition,
    role_level,
    sub_role_for,
)
from core.principal import AuthenticatedUser, Collection, CollectionGrant, SubRole

NON_ADMIN_ROLES = [r for r in FullRole if r not in (FullRole.ADMIN, FullRole.SUPER_ADMIN)]


def principal(
    full_role: FullRole,
    overrides: list[CollectionGrant] | None = None,
    grants: list[CollectionGrant] | None = None,
    external_id: str | None = None,
) -> AuthenticatedUser:
    return AuthenticatedUser(
        id=1,
        external_id=external_id or f"uid-{full_role.value}",
        email=f"{full_role.value}@test.com",
        display_name=full_role.value,
        full_role=full_role,
        status=UserStatus.ACTIVE,
        collection_permissions=tuple(default_collection_permissions(full_role) if grants is None else grants),
        permission_overrides=tuple(overrides or ()),
    )


# ---------- Capability table ----------

def test_every_sub_role_has_actions():
    for sub_role in SubRole:
        assert actions_for(sub_role), sub_role


def test_sub_role_actions_are_monotonic():
    for lower, higher in zip(SUB_ROLE_ORDER, SUB_ROLE_ORDER[1:]):
        assert actions_for(lower) <= actions_for(higher)


def test_sub_role_action_sets():
    assert actions_for(SubRole.OBSERVER) == {Action.VIEW}
    assert actions_for(SubRole.CONTRIBUTOR) == {Action.VIEW, Action.ADD, Action.EDIT}
    assert Action.MODERATE in actions_for(SubRole.MODERATOR)
    assert Action.DELETE not in actions_for(SubRole.MODERATOR)
    assert actions_for(SubRole.COLLECTION_ADMIN) == set(Action)


@pytest.mark.parametrize("full_role", list(FullRole))
def test_role_tables_are_total(full_role):
    assert isinstance(default_sub_role(full_role), SubRole)
    assert isinstance(default_collections(full_role), frozenset)
    assert role_level(full_role) >= 1


def test_role_default_collections():
    assert default_collections(FullRole.MARKETING) == {Collection.BLOGS, Collection.NEWS}
    assert default_collections(FullRole.HR) == {Collection.CAREERS, Collection.DEVELOPERS}
    assert Collection.SYSTEM not in default_collections(FullRole.ADMIN)
    assert default_collections(FullRole.SUPER_ADMIN) == set(Collection)


def test_default_collection_permissions_use_role_sub_role():
    grants = default_collection_permissions(FullRole.SALES)
    assert {g.collection for g in grants} == default_collections(FullRole.SALES)
    assert {g.sub_role for g in grants} == {SubRole.CONTRIBUTOR}


# ---------- Collection checks ----------

def test_role_default_grants_apply():
    marketing = principal(FullRole.MARKETING)
    assert has_collection_permission(marketing, Collection.BLOGS, Action.ADD)
    assert not has_collection_permission(marketing, Collection.BLOGS, Action.DELETE)
    assert not has_collection_permission(marketing, Collection.PROJECTS, Action.VIEW)


def test_override_shadows_role_grant_downwards():
    """Override COLLECTION_ADMIN -> OBSERVER wins even though the role grant is higher."""
    user = principal(
        FullRole.ADMIN,
        overrides=[CollectionGrant(collection=Collection.PROJECTS, sub_role=SubRole.OBSERVER)],
    )
    assert sub_role_for(user, Collection.PROJECTS) == SubRole.OBSERVER
    assert has_collection_permission(user, Collection.PROJECTS, Action.VIEW)
    assert not has_collection_permission(user, Collection.PROJECTS, Action.EDIT)
    # Other collections keep the role default
    assert has_collection_permission(user, Collection.MALLS, Action.DELETE)


def test_override_grants_new_collection():
    user = principal(
        FullRole.USER,
        overrides=[CollectionGrant(collection=Collection.HOTELS, sub_role=SubRole.MODERATOR)],
    )
    assert has_collection_permission(user, Collection.HOTELS, Action.MODERATE)
    assert Collection.HOTELS in accessible_collections(user)
    assert Collection.PROJECTS in accessible_collections(user)


def test_no_grant_means_deny():
    user = principal(FullRole.USER, grants=[])
    for collection in Collection:
        for action in Action:
            assert not has_collection_permission(user, collection, action)


# ---------- System capabilities ----------

@pytest.mark.parametrize("full_role", NON_ADMIN_ROLES)
def test_non_admin_roles_never_get_system_capabilities(full_role):
    """COLLECTION_ADMIN on every collection, as grant and override, still grants nothing system-wide."""
    everything = [CollectionGrant(collection=c, sub_role=SubRole.COLLECTION_ADMIN) for c in Collection]
    user = principal(full_role, overrides=everything, grants=everything)
    for capability in SystemCapability:
        assert not has_system_capability(user, capability), capability


def test_admin_capabilities_are_exactly_the_admin_set():
    admin = principal(FullRole.ADMIN)
    granted = {cap for cap in SystemCapability if has_system_capability(admin, cap)}
    assert granted == ADMIN_CAPABILITIES
    assert not has_system_capability(admin, SystemCapability.VIEW_AUDIT_TRAIL)
    assert not has_system_capability(admin, SystemCapability.SYSTEM_SETTINGS)


def test_super_admin_has_every_capability():
    root = principal(FullRole.SUPER_ADMIN)
    assert all(has_system_capability(root, cap) for cap in SystemCapability)


def test_admin_with_restricted_collection_keeps_capabilities():
    admin = principal(
        FullRole.ADMIN,
        overrides=[CollectionGrant(collection=Collection.BLOGS, sub_role=SubRole.CONTRIBUTOR)],
    )
    assert not has_collection_permission(admin, Collection.BLOGS, Action.DELETE)
    assert has_system_capability(admin, SystemCapability.MANAGE_USERS)


# ---------- Role hierarchy ----------

def test_can_manage_strictly_lower_roles_only():
    admin = principal(FullRole.ADMIN)
    assert can_manage_user(admin, FullRole.MARKETING, "someone-else")
    assert can_manage_user(admin, FullRole.USER, "someone-else")
    assert not can_manage_user(admin, FullRole.ADMIN, "another-admin")
    assert not can_manage_user(admin, FullRole.SUPER_ADMIN, "root")


def test_cannot_manage_self_even_at_lower_level():
    root = principal(FullRole.SUPER_ADMIN, external_id="me")
    assert not can_manage_user(root, FullRole.USER, "me")


def test_assignable_roles():
    root = principal(FullRole.SUPER_ADMIN)
    assert FullRole.SUPER_ADMIN not in assignable_roles(root)
    assert FullRole.ADMIN in assignable_roles(root)

    admin = principal(FullRole.ADMIN)
    assert FullRole.ADMIN not in assignable_roles(admin)
    assert set(assignable_roles(admin)) == set(NON_ADMIN_ROLES)

    assert assignable_roles(principal(FullRole.USER)) == []


def test_available_actions_for_admin_on_lower_user():
    admin = principal(FullRole.ADMIN)
    actions = available_actions(admin, FullRole.SALES, "sales-uid")
    assert actions["can_edit"]
    assert actions["can_change_role"]
    assert actions["can_manage_permissions"]
    assert actions["can_unlock"]
    # Only super admins delete
    assert not actions["can_delete"]


def test_available_actions_on_self():
    admin = principal(FullRole.ADMIN, external_id="me")
    actions = available_actions(admin, FullRole.ADMIN, "me")
    assert not actions["can_edit"]
    assert not actions["can_change_role"]
    assert not actions["can_change_status"]
    assert actions["can_view_sensitive_info"]
    assert actions["can_reset_password"]


# ---------- Status transitions ----------

def test_status_transitions():
    assert is_allowed_status_transition(UserStatus.ACTIVE, UserStatus.SUSPENDED)
    assert is_allowed_status_transition(UserStatus.SUSPENDED, UserStatus.ACTIVE)
    assert is_allowed_status_transition(UserStatus.DELETED, UserStatus.ACTIVE)
    assert not is_allowed_status_transition(UserStatus.ACTIVE, UserStatus.INVITED)
    assert not is_allowed_status_transition(UserStatus.DELETED, UserStatus.SUSPENDED)


def test_content_collections_exclude_system_ones():
    assert Collection.USERS not in CONTENT_COLLECTIONS
    assert Collection.SYSTEM not in CONTENT_COLLECTIONS
    assert len(CONTENT_COLLECTIONS) == 11
