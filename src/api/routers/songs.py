"""Song endpoints (the Hits catalog)."""
from api.dependencies import CATALOG_READ_ROLES, CATALOG_WRITE_ROLES, get_hits_session
from api.helpers import build_crud_router
from schemas.song import SongCreate, SongResponse, SongUpdate
from services.song_service import SongService

router = build_crud_router(
    prefix="/songs",
    tag="songs",
    service_class=SongService,
    create_schema=SongCreate,
    update_schema=SongUpdate,
    response_schema=SongResponse,
    session_dependency=get_hits_session,
    read_roles=CATALOG_READ_ROLES,
    write_roles=CATALOG_WRITE_ROLES,
)
