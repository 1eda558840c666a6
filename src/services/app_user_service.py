"""Service layer for app user CRUD operations."""
from sqlalchemy.orm import InstrumentedAttribute

from models.app_user import AppUser
from services.crud_service import CrudService


class AppUserService(CrudService[AppUser]):
    model = AppUser
    entity_name = "AppUser"

    def _get_query_fields(self) -> dict[str, InstrumentedAttribute]:
        return {
            "id": AppUser.id,
            "user_name": AppUser.user_name,
            "role_id": AppUser.role_id,
            "sys_guid": AppUser.sys_guid,
            "sys_user": AppUser.sys_user,
            "sys_start": AppUser.sys_start,
        }

    def _get_navigations(self) -> dict[str, InstrumentedAttribute]:
        return {"app_role": AppUser.app_role}
