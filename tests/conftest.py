"""Pytest fixtures for testing."""
import os

# Must be set before any app imports that trigger Settings validation
os.environ.setdefault("DB_CONTEXTS__HITSCONTEXT", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DB_CONTEXTS__APPUSERROLESCONTEXT", "sqlite+aiosqlite:///:memory:")
os.environ.pop("FAKE_USER", None)

from collections.abc import AsyncGenerator, AsyncIterator, Callable, Generator  # noqa: E402
from contextlib import asynccontextmanager  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402
from testcontainers.postgres import PostgresContainer  # noqa: E402

from core.config import Settings, get_settings  # noqa: E402
from core.count_cache import CountCacheRegistry  # noqa: E402
from core.roles import RolesCache  # noqa: E402
from db.contexts import APP_USER_ROLES_CONTEXT, HITS_CONTEXT  # noqa: E402
from db.session import DbContextService, DbContextType  # noqa: E402
from services.crud_service import CrudServiceDependencies  # noqa: E402


class FakeClock:
    """Manually advanced clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> Settings:
    """Settings from the test environment."""
    get_settings.cache_clear()
    return get_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def hits_session(settings: Settings) -> AsyncGenerator[AsyncSession]:
    """A fresh, seeded in-memory Hits catalog database."""
    service = DbContextService(HITS_CONTEXT, settings)
    async with service.open_test_session(DbContextType.IN_MEMORY) as session:
        yield session


@pytest.fixture
async def roles_session(settings: Settings) -> AsyncGenerator[AsyncSession]:
    """A fresh, seeded in-memory app user/role database."""
    service = DbContextService(APP_USER_ROLES_CONTEXT, settings)
    async with service.open_test_session(DbContextType.IN_MEMORY) as session:
        yield session


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer]:
    """
    Start a PostgreSQL container for the tests that run against the production database.

    Those tests are skipped when Docker is not available.
    """
    try:
        container = PostgresContainer("postgres:16", driver="asyncpg").start()
    except Exception as exc:  # noqa: BLE001
        pytest.skip(f"PostgreSQL container unavailable: {exc}")
    yield container
    container.stop()


@pytest.fixture
def postgres_settings(settings: Settings, postgres_container: PostgresContainer) -> Settings:
    """Settings pointing both database contexts at the PostgreSQL container."""
    url = postgres_container.get_connection_url()
    return settings.model_copy(
        update={"db_contexts": {"HitsContext": url, "AppUserRolesContext": url}},
    )


@pytest.fixture
def count_cache_registry() -> CountCacheRegistry:
    return CountCacheRegistry()


@pytest.fixture
def roles_cache() -> RolesCache:
    return RolesCache()


@pytest.fixture
def make_deps(
    settings: Settings,
    count_cache_registry: CountCacheRegistry,
) -> Callable[..., CrudServiceDependencies]:
    """Factory for service dependencies acting as a given user (default Maria/admin)."""

    def _make(
        db: AsyncSession,
        user_name: str = "Maria",
        role: str = "admin",
    ) -> CrudServiceDependencies:
        return CrudServiceDependencies.for_testing(
            db,
            user_name,
            role,
            settings=settings,
            count_cache_registry=count_cache_registry,
        )

    return _make


@pytest.fixture
async def client(
    settings: Settings,
    hits_session: AsyncSession,
    roles_session: AsyncSession,
    count_cache_registry: CountCacheRegistry,
    roles_cache: RolesCache,
) -> AsyncGenerator[AsyncClient]:
    """
    Create a test client with database session overrides.

    Requests authenticate as FAKE_USER=Maria (admin) unless a test calls
    `use_fake_user`.
    """
    from api.main import app  # noqa: PLC0415
    from core.count_cache import set_count_cache_registry  # noqa: PLC0415
    from core.roles import set_roles_cache  # noqa: PLC0415
    from db.session import get_hits_session, get_roles_session, get_roles_session_scope  # noqa: PLC0415

    async def override_get_hits_session() -> AsyncGenerator[AsyncSession]:
        yield hits_session

    async def override_get_roles_session() -> AsyncGenerator[AsyncSession]:
        yield roles_session

    @asynccontextmanager
    async def roles_session_scope() -> AsyncIterator[AsyncSession]:
        yield roles_session

    app.dependency_overrides[get_hits_session] = override_get_hits_session
    app.dependency_overrides[get_roles_session] = override_get_roles_session
    app.dependency_overrides[get_roles_session_scope] = lambda: roles_session_scope
    use_fake_user(app, settings, "Maria")
    set_count_cache_registry(count_cache_registry)
    set_roles_cache(roles_cache)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    set_count_cache_registry(None)
    set_roles_cache(None)


def use_fake_user(app, settings: Settings, user_name: str | None) -> None:  # noqa: ANN001
    """Authenticate subsequent requests as user_name (None disables the fake user)."""
    fake_settings = settings.model_copy(update={"fake_user": user_name})
    app.dependency_overrides[get_settings] = lambda: fake_settings


@pytest.fixture
def as_user(client: AsyncClient, settings: Settings) -> Callable[[str | None], None]:  # noqa: ARG001
    """Switch the fake user for subsequent requests made with `client`."""
    from api.main import app  # noqa: PLC0415

    def _as_user(user_name: str | None) -> None:
        use_fake_user(app, settings, user_name)

    return _as_user
