# api/permission_requests/models.py
"""
Pydantic models for permission request endpoints.
"""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from db_models.permission_request import RequestPriority, RequestStatus
from core.principal import CollectionGrant


class PermissionRequestCreate(BaseModel):
    requested_permissions: list[CollectionGrant] = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=1000)
    business_justification: str | None = Field(None, max_length=2000)
    requested_expiry: datetime | None = None
    priority: RequestPriority = RequestPriority.NORMAL

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("A message explaining the request is required")
        return value


class PermissionRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requested_by: str
    requested_by_email: str
    requested_permissions: list[CollectionGrant]
    message: str
    business_justification: str | None = None
    requested_expiry: datetime | None = None
    priority: RequestPriority
    status: RequestStatus
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    granted_permissions: list[CollectionGrant] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RequestStats(BaseModel):
    pending: int
    approved: int
    rejected: int
    total: int


class PermissionRequestListResponse(BaseModel):
    requests: list[PermissionRequestRead]
    stats: RequestStats | None = None
    can_review: bool


class ReviewRequest(BaseModel):
    review_notes: str | None = Field(None, max_length=1000)


class ApprovalRequest(ReviewRequest):
    """`granted_permissions` narrows or replaces what was asked for; omitted means grant as requested."""
    granted_permissions: list[CollectionGrant] | None = Field(None, min_length=1)
