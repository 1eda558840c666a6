"""Service layer for artist CRUD operations."""
from sqlalchemy.orm import InstrumentedAttribute

from models.artist import Artist
from services.crud_service import CrudService


class ArtistService(CrudService[Artist]):
    """Artist CRUD; songs may be eager-loaded with expand=Songs."""

    model = Artist
    entity_name = "Artist"

    def _get_query_fields(self) -> dict[str, InstrumentedAttribute]:
        return {
            "id": Artist.id,
            "name": Artist.name,
            "is_solo": Artist.is_solo,
            "sys_guid": Artist.sys_guid,
            "sys_user": Artist.sys_user,
            "sys_start": Artist.sys_start,
        }

    def _get_navigations(self) -> dict[str, InstrumentedAttribute]:
        return {"songs": Artist.songs}
