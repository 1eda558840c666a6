"""SQLAlchemy models."""
from models.base import MAX_SYS_END, Base, EntityBase, TemporalMixin
from models.artist import Artist
from models.song import Song
from models.app_role import AppRole
from models.app_user import AppUser

__all__ = [
    "MAX_SYS_END",
    "AppRole",
    "AppUser",
    "Artist",
    "Base",
    "EntityBase",
    "Song",
    "TemporalMixin",
]
