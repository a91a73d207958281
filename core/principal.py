# core/principal.py
"""
The resolved caller of a request.

`AuthenticatedUser` is what route guards hand to endpoints once the session
has been validated. It is also what the session cache stores, so it must
stay JSON-serializable.
"""
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from db_models.user import FullRole, UserStatus, User


class Collection(str, Enum):
    """Resource collections managed by the panel."""
    PROJECTS = "projects"
    PROPERTIES = "properties"
    BLOGS = "blogs"
    NEWS = "news"
    CAREERS = "careers"
    DEVELOPERS = "developers"
    PLOTS = "plots"
    BUILDINGS = "buildings"
    HOTELS = "hotels"
    MALLS = "malls"
    COMMUNITIES = "communities"
    USERS = "users"
    SYSTEM = "system"


class SubRole(str, Enum):
    """Per-collection capability tiers, weakest first."""
    OBSERVER = "observer"
    CONTRIBUTOR = "contributor"
    MODERATOR = "moderator"
    COLLECTION_ADMIN = "collection_admin"


class CollectionGrant(BaseModel):
    """A (collection, sub-role) pair stored on a user."""
    model_config = ConfigDict(frozen=True)

    collection: Collection
    sub_role: SubRole


class AuthenticatedUser(BaseModel):
    """Typed snapshot of a local user record, safe to cache."""
    model_config = ConfigDict(frozen=True)

    id: int
    external_id: str
    email: str
    display_name: str
    full_role: FullRole
    status: UserStatus
    department: str | None = None
    collection_permissions: tuple[CollectionGrant, ...] = Field(default_factory=tuple)
    permission_overrides: tuple[CollectionGrant, ...] = Field(default_factory=tuple)
    last_login_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> "AuthenticatedUser":
        return cls(
            id=user.id,
            external_id=user.external_id,
            email=user.email,
            display_name=user.display_name,
            full_role=FullRole(user.full_role),
            status=UserStatus(user.status),
            department=user.department,
            collection_permissions=parse_grants(user.collection_permissions),
            permission_overrides=parse_grants(user.permission_overrides),
            last_login_at=user.last_login_at,
        )


def parse_grants(raw: list[dict[str, Any]] | None) -> tuple[CollectionGrant, ...]:
    """Turn the JSON column content into grants, keeping the stored order."""
    return tuple(CollectionGrant.model_validate(item) for item in raw or ())


def dump_grants(grants) -> list[dict[str, str]]:
    """Inverse of `parse_grants`, for writing back to the JSON column."""
    return [
        {"collection": grant.collection.value, "sub_role": grant.sub_role.value}
        for grant in grants
    ]
