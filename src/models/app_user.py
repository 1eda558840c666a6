"""Application user model."""
from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.config import get_settings
from models.app_role import AppRole
from models.base import Base, EntityBase, TemporalMixin


class AppUser(Base, EntityBase, TemporalMixin):
    """User model - maps an identity provider user name to an application role."""

    __tablename__ = f"{get_settings().security.table_prefix}AppUser"

    user_name: Mapped[str] = mapped_column(String(150), unique=True, nullable=False)
    role_id: Mapped[int | None] = mapped_column(
        ForeignKey(f"{AppRole.__tablename__}.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    app_role: Mapped[AppRole | None] = relationship(back_populates="app_users")
