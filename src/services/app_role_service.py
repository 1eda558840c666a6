"""Service layer for app role CRUD operations."""
import logging

from sqlalchemy import select
from sqlalchemy.orm import InstrumentedAttribute

from models.app_role import AppRole
from models.app_user import AppUser
from services.crud_service import CrudService

logger = logging.getLogger(__name__)


class AppRoleService(CrudService[AppRole]):
    """
    App role CRUD.

    Deleting a role detaches its users (role_id set to NULL) instead of
    deleting them.
    """

    model = AppRole
    entity_name = "AppRole"

    def _get_query_fields(self) -> dict[str, InstrumentedAttribute]:
        return {
            "id": AppRole.id,
            "role_name": AppRole.role_name,
            "sys_guid": AppRole.sys_guid,
            "sys_user": AppRole.sys_user,
            "sys_start": AppRole.sys_start,
        }

    def _get_navigations(self) -> dict[str, InstrumentedAttribute]:
        return {"app_users": AppRole.app_users}

    async def before_delete(self, existing: AppRole) -> None:
        result = await self.db.execute(
            select(AppUser).where(AppUser.role_id == existing.id),
        )
        users = list(result.scalars().all())
        for user in users:
            user.role_id = None
        self._stamp_sys_user()
        await self._flush()
        logger.debug(
            "app_role_users_detached role=%s count=%s",
            existing.role_name,
            len(users),
        )
