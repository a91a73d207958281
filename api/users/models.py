# api/users/models.py
"""
Pydantic models for user administration endpoints.
"""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from db_models.user import FullRole, UserStatus
from core.principal import CollectionGrant


class UserSummary(BaseModel):
    """User row as listed in the admin table."""
    model_config = ConfigDict(from_attributes=True)

    external_id: str
    email: str
    display_name: str
    full_role: FullRole
    status: UserStatus
    department: str | None = None
    phone: str | None = None
    collection_permissions: list[CollectionGrant] = Field(default_factory=list)
    permission_overrides: list[CollectionGrant] = Field(default_factory=list)
    created_at: datetime | None = None
    last_login_at: datetime | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class UserListResponse(BaseModel):
    users: list[UserSummary]
    pagination: Pagination


class UserStatsResponse(BaseModel):
    total: int
    by_status: dict[str, int]
    by_role: dict[str, int]
    locked: int


class ActivityEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    action: str
    user_id: str | None = None
    success: bool
    timestamp: datetime


class UserDetail(UserSummary):
    """Single user, with the fields only visible to sufficiently senior callers."""
    bio: str | None = None
    login_attempts: int = 0
    locked_until: datetime | None = None
    last_role_change: dict[str, Any] | None = None


class UserDetailResponse(BaseModel):
    user: UserDetail
    available_actions: dict[str, bool]
    assignable_roles: list[FullRole]
    recent_activity: list[ActivityEntry]


class InviteRequest(BaseModel):
    email: EmailStr
    display_name: str = Field(..., min_length=1, max_length=255)
    full_role: FullRole = FullRole.USER
    department: str | None = Field(None, max_length=100)


class InviteResponse(BaseModel):
    user: UserSummary
    temporary_password: str


class PasswordResetResponse(BaseModel):
    user: UserSummary
    temporary_password: str


class RoleChangeRequest(BaseModel):
    full_role: FullRole
    reason: str | None = Field(None, max_length=500)


class StatusChangeRequest(BaseModel):
    status: UserStatus
    reason: str | None = Field(None, max_length=500)


class PermissionOverridesRequest(BaseModel):
    permission_overrides: list[CollectionGrant]
