"""FastAPI dependencies for injection."""
from core.auth import get_current_principal, require_roles
from core.config import get_settings
from db.session import get_hits_session, get_roles_session

# Role groups used by the routers
ADMIN_ROLES = ("IT", "admin")
CATALOG_WRITE_ROLES = ("IT", "admin", "user")
CATALOG_READ_ROLES = ("IT", "admin", "user", "readonly")

__all__ = [
    "ADMIN_ROLES",
    "CATALOG_READ_ROLES",
    "CATALOG_WRITE_ROLES",
    "get_current_principal",
    "get_hits_session",
    "get_roles_session",
    "get_settings",
    "require_roles",
]
