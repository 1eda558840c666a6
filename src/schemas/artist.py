"""Pydantic schemas for artist endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ArtistCreate(BaseModel):
    """Schema for creating a new artist."""

    name: str = Field(min_length=1, max_length=60)
    is_solo: bool = False
    sys_guid: UUID | None = None


class ArtistUpdate(BaseModel):
    """Schema for updating an existing artist. Omitted fields are left unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=60)
    is_solo: bool | None = None


class ArtistResponse(BaseModel):
    """Schema for artist responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    is_solo: bool
    sys_guid: UUID
    sys_user: str | None
    sys_start: datetime | None = None
