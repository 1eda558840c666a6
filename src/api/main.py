"""FastAPI application entry point."""
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import AppUserRolesMiddleware, SecurityHeadersMiddleware
from api.routers import app_roles, app_users, artists, health, songs
from core.config import get_settings
from core.count_cache import CountCacheRegistry, set_count_cache_registry
from core.roles import RolesCache, set_roles_cache
from db.contexts import APP_USER_ROLES_CONTEXT, HITS_CONTEXT
from db.session import (
    DbContextService,
    clear_context_services,
    get_roles_session_scope,
    set_context_service,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan - startup and shutdown."""
    app_settings = get_settings()

    # Startup: resolve connection strings (missing entries raise ConfigurationError)
    context_services = [
        DbContextService(HITS_CONTEXT, app_settings),
        DbContextService(APP_USER_ROLES_CONTEXT, app_settings),
    ]
    for service in context_services:
        set_context_service(service)

    # Startup: process-local caches
    set_count_cache_registry(
        CountCacheRegistry(
            max_entries=app_settings.count_cache_max_entries,
            default_tolerance=app_settings.count_cache_tolerance_seconds,
        ),
    )
    set_roles_cache(RolesCache(max_entries=app_settings.roles_cache_max_entries))

    if app_settings.fake_user:
        logger.warning("fake_user_enabled user=%s", app_settings.fake_user)

    yield

    # Shutdown: drop caches and dispose engines
    set_roles_cache(None)
    set_count_cache_registry(None)
    for service in context_services:
        await service.dispose()
    clear_context_services()


app_settings = get_settings()

app = FastAPI(
    title="Hits API",
    description="A music catalog with generic CRUD paging and app-user role security.",
    version="0.1.0",
    lifespan=lifespan,
)

if app_settings.roles_middleware_enabled:
    app.add_middleware(
        AppUserRolesMiddleware,
        session_scope=lambda: get_roles_session_scope()(),
    )

# Security headers middleware (runs after CORS, adds headers to responses)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(artists.router)
app.include_router(songs.router)
app.include_router(app_users.router)
app.include_router(app_roles.router)
