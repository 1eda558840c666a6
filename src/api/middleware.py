"""HTTP middleware."""
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from core.auth import authenticate, get_claims_transformation
from core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Process request and add security headers to response."""
        response = await call_next(request)
        # HSTS: enforce HTTPS for 1 year, including subdomains
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking - API shouldn't be framed
        response.headers["X-Frame-Options"] = "DENY"
        return response


class AppUserRolesMiddleware(BaseHTTPMiddleware):
    """
    Authenticate each request and attach its app role.

    The augmented principal is stored on `request.state.principal`, where
    get_current_principal picks it up. Requests without credentials pass
    through unauthenticated so public endpoints (e.g. /health) keep working;
    invalid credentials are rejected here.

    Args:
        session_scope: Callable returning an async context manager that yields
            a session on the app user/role database.
    """

    def __init__(
        self,
        app: ASGIApp,
        session_scope: Callable[[], AbstractAsyncContextManager[AsyncSession]],
        settings: Settings | None = None,
    ) -> None:
        super().__init__(app)
        self._session_scope = session_scope
        self._settings = settings

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        """Resolve the principal and role, then continue the pipeline."""
        settings = self._settings or get_settings()
        credentials = self._get_credentials(request)

        if credentials is not None or settings.fake_user:
            try:
                principal = authenticate(credentials, settings)
            except HTTPException as e:
                return JSONResponse(
                    status_code=e.status_code,
                    content={"detail": e.detail},
                    headers=e.headers,
                )
            async with self._session_scope() as db:
                principal = await get_claims_transformation(settings).transform(principal, db)
            request.state.principal = principal
            logger.debug("app_user_roles_resolved user=%s role=%s", principal.name, principal.role)

        return await call_next(request)

    @staticmethod
    def _get_credentials(request: Request) -> HTTPAuthorizationCredentials | None:
        scheme, token = get_authorization_scheme_param(request.headers.get("Authorization"))
        if scheme.lower() != "bearer" or not token:
            return None
        return HTTPAuthorizationCredentials(scheme=scheme, credentials=token)
