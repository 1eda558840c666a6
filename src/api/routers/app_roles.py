"""App role endpoints. Deleting a role detaches its users."""
from api.dependencies import ADMIN_ROLES, get_roles_session
from api.helpers import build_crud_router
from schemas.app_role import AppRoleCreate, AppRoleResponse, AppRoleUpdate
from services.app_role_service import AppRoleService

router = build_crud_router(
    prefix="/app-roles",
    tag="app-roles",
    service_class=AppRoleService,
    create_schema=AppRoleCreate,
    update_schema=AppRoleUpdate,
    response_schema=AppRoleResponse,
    session_dependency=get_roles_session,
    read_roles=ADMIN_ROLES,
    write_roles=ADMIN_ROLES,
)
