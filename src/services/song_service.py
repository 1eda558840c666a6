"""Service layer for song CRUD operations."""
from sqlalchemy.orm import InstrumentedAttribute

from models.song import Song
from services.crud_service import CrudService


class SongService(CrudService[Song]):
    """Song CRUD; the artist may be eager-loaded with expand=Artist."""

    model = Song
    entity_name = "Song"

    def _get_query_fields(self) -> dict[str, InstrumentedAttribute]:
        return {
            "id": Song.id,
            "title": Song.title,
            "release_date": Song.release_date,
            "artist_id": Song.artist_id,
            "sys_guid": Song.sys_guid,
            "sys_user": Song.sys_user,
            "sys_start": Song.sys_start,
        }

    def _get_navigations(self) -> dict[str, InstrumentedAttribute]:
        return {"artist": Song.artist}
