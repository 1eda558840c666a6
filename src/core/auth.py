"""
Authentication and role-based authorization.

Requests are authenticated either as the configured FAKE_USER (local
development) or by an OpenID Connect bearer JWT. The resulting principal is
then augmented with the caller's app role before authorization checks.
"""
import logging
from collections.abc import Awaitable, Callable

import httpx
import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from core.principal import NAME_CLAIM, Claim, ClaimsPrincipal
from core.roles import RoleResolver, UserRolesClaimsTransformation, get_roles_cache
from db.session import SessionScope, get_roles_session_scope

logger = logging.getLogger(__name__)

FAKE_AUTHENTICATION_TYPE = "Fake"
BEARER_AUTHENTICATION_TYPE = "Bearer"

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)

# Cache for JWKS client (reuse across requests)
_jwks_clients: dict[str, PyJWKClient] = {}


def get_jwks_client(settings: Settings) -> PyJWKClient:
    """Get or create a cached JWKS client for the given settings."""
    if settings.idp_jwks_url not in _jwks_clients:
        _jwks_clients[settings.idp_jwks_url] = PyJWKClient(
            settings.idp_jwks_url,
            cache_jwk_set=True,
            lifespan=3600,  # Cache keys for 1 hour
        )
    return _jwks_clients[settings.idp_jwks_url]


def decode_jwt(token: str, settings: Settings) -> dict:
    """
    Decode and validate a JWT issued by the identity provider.

    Raises:
        HTTPException: If token is invalid, expired, or has wrong audience/issuer.
    """
    try:
        jwks_client = get_jwks_client(settings)
        signing_key = jwks_client.get_signing_key_from_jwt(token)

        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.idp_audience,
            issuer=settings.idp_issuer,
        )

    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidAudienceError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid audience",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidIssuerError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid issuer",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.PyJWTError as e:
        # Log full details for debugging (server-side only)
        logger.warning("JWT validation failed: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except httpx.HTTPError as e:
        logger.error("Failed to fetch JWKS from identity provider: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not validate credentials",
        )


def fake_principal(user_name: str, settings: Settings) -> ClaimsPrincipal:
    """Principal for FAKE_USER: the user-name claim plus a name claim."""
    return ClaimsPrincipal(
        [
            Claim(settings.security.idp_user_name_claim, user_name),
            Claim(NAME_CLAIM, user_name),
        ],
        authentication_type=FAKE_AUTHENTICATION_TYPE,
    )


def authenticate(
    credentials: HTTPAuthorizationCredentials | None,
    settings: Settings,
) -> ClaimsPrincipal:
    """
    Authenticate a request without resolving its role.

    FAKE_USER takes precedence over any bearer token.
    """
    if settings.fake_user:
        return fake_principal(settings.fake_user, settings)

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_jwt(credentials.credentials, settings)
    return ClaimsPrincipal.from_token_payload(payload, BEARER_AUTHENTICATION_TYPE)


def get_claims_transformation(settings: Settings) -> UserRolesClaimsTransformation:
    """Build the role claims transformation around the global roles cache."""
    roles_cache = get_roles_cache()
    if roles_cache is None:
        raise RuntimeError("Roles cache has not been initialized")
    resolver = RoleResolver(roles_cache, settings.security)
    return UserRolesClaimsTransformation(resolver, settings.security)


class AppUserRolesAuthenticationStateProvider:
    """Authenticates a request and returns its principal with the app role attached."""

    def __init__(self, transformation: UserRolesClaimsTransformation, settings: Settings) -> None:
        self._transformation = transformation
        self._settings = settings

    async def get_authentication_state(
        self,
        credentials: HTTPAuthorizationCredentials | None,
        db: AsyncSession,
    ) -> ClaimsPrincipal:
        principal = authenticate(credentials, self._settings)
        return await self._transformation.transform(principal, db)


async def get_current_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    open_roles_session: SessionScope = Depends(get_roles_session_scope),
    settings: Settings = Depends(get_settings),
) -> ClaimsPrincipal:
    """
    Dependency returning the authenticated principal with its role claim.

    Reuses the principal stored by AppUserRolesMiddleware when it has run;
    otherwise a roles session is opened just for the role lookup.
    """
    principal = getattr(request.state, "principal", None)
    if isinstance(principal, ClaimsPrincipal) and principal.is_authenticated:
        return principal

    provider = AppUserRolesAuthenticationStateProvider(
        get_claims_transformation(settings),
        settings,
    )
    async with open_roles_session() as db:
        return await provider.get_authentication_state(credentials, db)


def require_roles(*roles: str) -> Callable[..., Awaitable[ClaimsPrincipal]]:
    """
    Dependency factory: allow only principals whose role is one of roles.

    Example:
        @router.get("/", dependencies=[Depends(require_roles("admin", "IT"))])
    """
    allowed = frozenset(roles)

    async def check_roles(
        principal: ClaimsPrincipal = Depends(get_current_principal),
    ) -> ClaimsPrincipal:
        if principal.role not in allowed:
            logger.info(
                "authorization_denied user=%s role=%s allowed=%s",
                principal.name,
                principal.role,
                sorted(allowed),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role",
            )
        return principal

    return check_roles
