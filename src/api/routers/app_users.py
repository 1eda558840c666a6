"""App user endpoints (user to role assignments)."""
from api.dependencies import ADMIN_ROLES, get_roles_session
from api.helpers import build_crud_router
from schemas.app_user import AppUserCreate, AppUserResponse, AppUserUpdate
from services.app_user_service import AppUserService

router = build_crud_router(
    prefix="/app-users",
    tag="app-users",
    service_class=AppUserService,
    create_schema=AppUserCreate,
    update_schema=AppUserUpdate,
    response_schema=AppUserResponse,
    session_dependency=get_roles_session,
    read_roles=ADMIN_ROLES,
    write_roles=ADMIN_ROLES,
)
