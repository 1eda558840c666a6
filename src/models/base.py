"""SQLAlchemy declarative base with common mixins."""
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import DateTime, String, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Open-ended period end used for current rows
MAX_SYS_END = datetime(9999, 12, 31, 23, 59, 59, 999000, tzinfo=UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class EntityBase:
    """
    Mixin for rows managed by CrudService.

    `sys_guid` is assigned once when the row is created and never reassigned.
    `sys_user` is overwritten with the acting user on every write.
    """

    id: Mapped[int] = mapped_column(primary_key=True)
    sys_user: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sys_guid: Mapped[UUID] = mapped_column(Uuid, unique=True, nullable=False)


class TemporalMixin:
    """
    Mixin that adds sys_start and sys_end period columns.

    All timestamps are timezone-aware. sys_start is refreshed on every update;
    sys_end stays at MAX_SYS_END for current rows.
    """

    sys_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        index=True,
    )
    sys_end: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=MAX_SYS_END,
        nullable=False,
    )
