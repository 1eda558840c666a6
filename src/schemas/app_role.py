"""Pydantic schemas for app role endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AppRoleCreate(BaseModel):
    """Schema for creating a new app role."""

    role_name: str = Field(min_length=1, max_length=30)
    sys_guid: UUID | None = None


class AppRoleUpdate(BaseModel):
    """Schema for renaming an app role."""

    role_name: str | None = Field(default=None, min_length=1, max_length=30)


class AppRoleResponse(BaseModel):
    """Schema for app role responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    role_name: str
    sys_guid: UUID
    sys_user: str | None
    sys_start: datetime | None = None
