"""Pydantic schemas for app user endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AppUserCreate(BaseModel):
    """Schema for creating a new app user."""

    user_name: str = Field(min_length=1, max_length=150)
    role_id: int | None = None
    sys_guid: UUID | None = None


class AppUserUpdate(BaseModel):
    """
    Schema for updating an existing app user.

    Send `"role_id": null` to remove the user's role; omit it to leave the role unchanged.
    """

    user_name: str | None = Field(default=None, min_length=1, max_length=150)
    role_id: int | None = None


class AppUserResponse(BaseModel):
    """Schema for app user responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_name: str
    role_id: int | None
    sys_guid: UUID
    sys_user: str | None
    sys_start: datetime | None = None
