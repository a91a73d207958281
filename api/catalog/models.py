# api/catalog/models.py
"""
Pydantic models for catalog endpoints. The payload of an entry is free-form
JSON; each collection's client decides its fields.
"""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from db_models.catalog_entry import EntryStatus

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"

# Fixed path segments of the collection routers; an entry under one of these
# slugs could never be fetched
RESERVED_SLUGS = frozenset({"counts", "dropdown"})


class EntryCreate(BaseModel):
    slug: str = Field(..., min_length=1, max_length=255, pattern=SLUG_PATTERN)
    title: str = Field(..., min_length=1, max_length=255)
    data: dict[str, Any] = Field(default_factory=dict)
    status: EntryStatus = EntryStatus.DRAFT

    @field_validator("slug")
    @classmethod
    def slug_not_reserved(cls, value: str) -> str:
        if value in RESERVED_SLUGS:
            raise ValueError(f"'{value}' is a reserved slug")
        return value


class EntryUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    data: dict[str, Any] | None = None
    status: EntryStatus | None = None


class ModerationRequest(BaseModel):
    note: str | None = Field(None, max_length=1000)


class EntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    collection: str
    slug: str
    title: str
    status: EntryStatus
    data: dict[str, Any]
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DropdownItem(BaseModel):
    slug: str
    title: str
