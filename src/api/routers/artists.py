"""Artist endpoints (the Hits catalog)."""
from api.dependencies import CATALOG_READ_ROLES, CATALOG_WRITE_ROLES, get_hits_session
from api.helpers import build_crud_router
from schemas.artist import ArtistCreate, ArtistResponse, ArtistUpdate
from services.artist_service import ArtistService

router = build_crud_router(
    prefix="/artists",
    tag="artists",
    service_class=ArtistService,
    create_schema=ArtistCreate,
    update_schema=ArtistUpdate,
    response_schema=ArtistResponse,
    session_dependency=get_hits_session,
    read_roles=CATALOG_READ_ROLES,
    write_roles=CATALOG_WRITE_ROLES,
)
