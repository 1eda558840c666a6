"""Song model for the Hits catalog."""
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import Date, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, EntityBase, TemporalMixin

if TYPE_CHECKING:
    from models.artist import Artist


class Song(Base, EntityBase, TemporalMixin):
    """Song model - a single hit by an artist."""

    __tablename__ = "Song"

    title: Mapped[str] = mapped_column(String(60), nullable=False)
    release_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    artist_id: Mapped[int] = mapped_column(
        ForeignKey("Artist.id"),
        nullable=False,
        index=True,
    )

    artist: Mapped["Artist"] = relationship(back_populates="songs")
