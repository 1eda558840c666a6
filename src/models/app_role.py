"""Application role model."""
from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.config import get_settings
from models.base import Base, EntityBase, TemporalMixin

if TYPE_CHECKING:
    from models.app_user import AppUser


class AppRole(Base, EntityBase, TemporalMixin):
    """Role model - each app user holds at most one role."""

    __tablename__ = f"{get_settings().security.table_prefix}AppRole"

    role_name: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)

    # Users are detached (role_id set to NULL) rather than deleted with the role
    app_users: Mapped[list["AppUser"]] = relationship(
        back_populates="app_role",
        passive_deletes=True,
    )
