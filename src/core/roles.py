"""
Role resolution for app users.

A caller's role comes from the AppUser/AppRole tables, joined on role_id and
looked up by the user-name claim issued by the identity provider. Resolved
roles are cached per user name for SecurityOptions.refresh_interval.
"""
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import SecurityOptions
from core.memory_cache import BoundedCache, CacheStore
from core.principal import ROLE_CLAIM, Claim, ClaimsPrincipal
from models import AppRole, AppUser

logger = logging.getLogger(__name__)

# Returned for users with no assigned role. Never cached.
UNDEFINED_ROLE = "undefined"


@dataclass(frozen=True)
class RoleEntry:
    """A cached role and the clock reading after which it must be looked up again."""

    expires_at: float
    role: str


class RolesCache:
    """Bounded, expiring map of user name to role."""

    def __init__(
        self,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
        store: CacheStore[RoleEntry] | None = None,
    ) -> None:
        self._clock = clock
        self._store: CacheStore[RoleEntry] = store if store is not None else BoundedCache(max_entries)

    def get(self, user_name: str) -> str | None:
        """Return the cached role, or None when absent or expired."""
        entry = self._store.get(user_name)
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry.role

    def set(self, user_name: str, role: str, refresh_interval_ms: int) -> None:
        """Cache a role for refresh_interval_ms milliseconds."""
        self._store.set(user_name, RoleEntry(self._clock() + refresh_interval_ms / 1000, role))

    def invalidate(self, user_name: str) -> None:
        self._store.discard(user_name)

    def __len__(self) -> int:
        return len(self._store)


class RoleResolver:
    """Look up a user's role, serving from the RolesCache when fresh."""

    def __init__(self, roles_cache: RolesCache, security: SecurityOptions) -> None:
        self._roles_cache = roles_cache
        self._security = security

    async def get_role(self, db: AsyncSession, user_name: str) -> str:
        """
        Get the role name for a user.

        Returns UNDEFINED_ROLE (without caching it) when the user does not exist
        or has no role, so a newly assigned role is picked up on the next request.
        """
        cached = self._roles_cache.get(user_name)
        if cached is not None:
            logger.debug("roles_cache_hit user_name=%s role=%s", user_name, cached)
            return cached

        result = await db.execute(
            select(AppRole.role_name)
            .join(AppUser, AppRole.id == AppUser.role_id)
            .where(AppUser.user_name == user_name)
            .limit(1),
        )
        role = result.scalar_one_or_none()
        if role is None:
            logger.debug("roles_lookup_undefined user_name=%s", user_name)
            return UNDEFINED_ROLE

        self._roles_cache.set(user_name, role, self._security.refresh_interval)
        logger.debug("roles_cache_set user_name=%s role=%s", user_name, role)
        return role


class UserRolesClaimsTransformation:
    """Add a role claim to principals that do not already carry one."""

    def __init__(self, resolver: RoleResolver, security: SecurityOptions) -> None:
        self._resolver = resolver
        self._security = security

    async def transform(self, principal: ClaimsPrincipal, db: AsyncSession) -> ClaimsPrincipal:
        """
        Augment the principal in place and return it.

        Principals that already have a role claim, or that carry no user-name
        claim, pass through unchanged.
        """
        if principal.has_claim(ROLE_CLAIM):
            return principal

        user_name = principal.find_first(self._security.idp_user_name_claim, ignore_case=True)
        if user_name is None:
            return principal

        role = await self._resolver.get_role(db, user_name)
        principal.add_claims([Claim(ROLE_CLAIM, role)])
        return principal


# Global roles cache instance (set during app startup)
_roles_cache: RolesCache | None = None


def get_roles_cache() -> RolesCache | None:
    """Get the global roles cache instance."""
    return _roles_cache


def set_roles_cache(cache: RolesCache | None) -> None:
    """Set the global roles cache instance."""
    global _roles_cache  # noqa: PLW0603
    _roles_cache = cache
