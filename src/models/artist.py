"""Artist model for the Hits catalog."""
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, EntityBase, TemporalMixin

if TYPE_CHECKING:
    from models.song import Song


class Artist(Base, EntityBase, TemporalMixin):
    """Artist model - a band or solo performer."""

    __tablename__ = "Artist"

    name: Mapped[str] = mapped_column(String(60), nullable=False)
    is_solo: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Deleting an artist that still has songs is rejected by the foreign key
    songs: Mapped[list["Song"]] = relationship(back_populates="artist", passive_deletes=True)
