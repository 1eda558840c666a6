"""Pydantic schemas for song endpoints."""
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SongCreate(BaseModel):
    """Schema for creating a new song."""

    title: str = Field(min_length=1, max_length=60)
    release_date: date | None = None
    artist_id: int
    sys_guid: UUID | None = None


class SongUpdate(BaseModel):
    """Schema for updating an existing song. Omitted fields are left unchanged."""

    title: str | None = Field(default=None, min_length=1, max_length=60)
    release_date: date | None = None
    artist_id: int | None = None


class SongResponse(BaseModel):
    """Schema for song responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    release_date: date | None
    artist_id: int
    sys_guid: UUID
    sys_user: str | None
    sys_start: datetime | None = None
