# api/auth/models.py
"""
Pydantic models for authentication endpoints.
"""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from db_models.user import FullRole, UserStatus
from core.principal import CollectionGrant


class LoginRequest(BaseModel):
    """Login credentials."""
    email: EmailStr
    password: str
    remember_me: bool = False


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    display_name: str = Field(..., min_length=1, max_length=255)


class ProfileUpdate(BaseModel):
    """Self-service profile changes. Anything else in the body is rejected."""
    model_config = ConfigDict(extra="forbid")

    display_name: str | None = Field(None, min_length=1, max_length=255)
    phone: str | None = Field(None, max_length=50)
    department: str | None = Field(None, max_length=100)
    bio: str | None = Field(None, max_length=2000)


class PasswordChange(BaseModel):
    """Request to change password."""
    current_password: str
    new_password: str = Field(..., min_length=8)


class UserProfile(BaseModel):
    """User data response."""
    model_config = ConfigDict(from_attributes=True)

    external_id: str
    email: str
    display_name: str
    full_role: FullRole
    status: UserStatus
    department: str | None = None
    phone: str | None = None
    bio: str | None = None
    collection_permissions: list[CollectionGrant] = Field(default_factory=list)
    permission_overrides: list[CollectionGrant] = Field(default_factory=list)
    created_at: datetime | None = None
    last_login_at: datetime | None = None


class PermissionSummary(BaseModel):
    """Effective access of the caller, for the client to enable its UI."""
    collections: dict[str, list[str]]
    capabilities: list[str]
    is_system_admin: bool
    is_super_admin: bool


class MeResponse(BaseModel):
    user: UserProfile
    permissions: PermissionSummary


class SessionResponse(BaseModel):
    """Issued session credential."""
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserProfile


class SessionMetricsResponse(BaseModel):
    metrics: dict[str, Any]
    health: dict[str, Any]
