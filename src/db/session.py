"""
Async SQLAlchemy session factories per database context.

A DbContextService produces sessions for one DbContext in one of three modes:

- PRODUCTION: pooled sessions against the configured connection string.
- OPEN_TRANSACTION: a single connection wrapped in an outer transaction that is
  rolled back when the session closes. Session commits become savepoints, so
  tests can exercise commit paths without leaving rows behind.
- IN_MEMORY: a fresh in-process SQLite database with the context's tables
  created (and optionally seeded) for each session.
"""
import logging
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from enum import StrEnum

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from core.config import Settings, get_connection_string
from db.contexts import APP_USER_ROLES_CONTEXT, HITS_CONTEXT, DbContext
from models import Base

logger = logging.getLogger(__name__)

IN_MEMORY_URL = "sqlite+aiosqlite:///:memory:"


class DbContextType(StrEnum):
    """Session mode for DbContextService.open_test_session."""

    PRODUCTION = "production"
    OPEN_TRANSACTION = "open_transaction"
    IN_MEMORY = "in_memory"


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """
    Make pysqlite/aiosqlite honor SQLAlchemy transaction boundaries.

    The driver's own implicit BEGIN handling breaks SAVEPOINT semantics, so it is
    disabled and BEGIN is emitted explicitly. Foreign keys are enabled per
    connection (SQLite defaults them off).
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # noqa: ANN001, ARG001
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(connection) -> None:  # noqa: ANN001
        connection.exec_driver_sql("BEGIN")


def create_engine_for(connection_string: str, settings: Settings) -> AsyncEngine:
    """Create an async engine, applying SQLite-specific setup where needed."""
    url = make_url(connection_string)

    if url.get_backend_name() == "sqlite":
        kwargs: dict = {"echo": settings.db_echo}
        if url.database in (None, "", ":memory:"):
            # One shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        engine = create_async_engine(url, **kwargs)
        _enable_sqlite_transactions(engine)
        return engine

    return create_async_engine(
        url,
        echo=settings.db_echo,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )


class DbContextService:
    """
    Session provider for a single DbContext.

    The connection string is resolved at construction; a missing entry raises
    ConfigurationError. The engine is created on first use.
    """

    def __init__(self, context: DbContext, settings: Settings) -> None:
        self.context = context
        self._settings = settings
        self.connection_string = get_connection_string(settings, context.name)
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """Pooled engine for the configured connection string."""
        if self._engine is None:
            self._engine = create_engine_for(self.connection_string, self._settings)
            logger.info(
                "db_engine_created context=%s backend=%s",
                self.context.name,
                self._engine.url.get_backend_name(),
            )
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Session factory bound to the pooled engine."""
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        return self._session_factory

    async def get_async_session(self) -> AsyncGenerator[AsyncSession]:
        """
        Yield an async database session.

        Uses unit-of-work pattern: services use flush() for refreshing objects,
        commit happens once here at request end. This ensures atomic transactions
        per request - if anything fails, all changes are rolled back.
        """
        async with self.session_scope() as session:
            yield session

    @asynccontextmanager
    async def session_scope(self) -> AsyncIterator[AsyncSession]:
        """Open a session that commits on success and rolls back on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def open_test_session(
        self,
        context_type: DbContextType = DbContextType.OPEN_TRANSACTION,
        seed: bool = True,
    ) -> AsyncIterator[AsyncSession]:
        """
        Open a session in the requested mode.

        Args:
            context_type: PRODUCTION, OPEN_TRANSACTION, or IN_MEMORY.
            seed: IN_MEMORY only - insert the context's seed rows before yielding.
        """
        if context_type == DbContextType.PRODUCTION:
            async with self.session_factory() as session:
                yield session
            return

        if context_type == DbContextType.OPEN_TRANSACTION:
            async with self.engine.connect() as connection:
                transaction = await connection.begin()
                session = AsyncSession(
                    bind=connection,
                    expire_on_commit=False,
                    join_transaction_mode="create_savepoint",
                )
                try:
                    yield session
                finally:
                    await session.close()
                    await transaction.rollback()
                    logger.debug("open_transaction_rolled_back context=%s", self.context.name)
            return

        engine = create_engine_for(IN_MEMORY_URL, self._settings)
        try:
            async with engine.begin() as connection:
                await connection.run_sync(Base.metadata.create_all, tables=self.context.tables)
            async with AsyncSession(engine, expire_on_commit=False) as session:
                if seed and self.context.seed is not None:
                    session.add_all(self.context.seed())
                    await session.commit()
                    # Callers start with an empty identity map, like a fresh request
                    session.expunge_all()
                yield session
        finally:
            await engine.dispose()

    async def create_tables(self) -> None:
        """Create this context's tables on the configured database if they do not exist."""
        async with self.engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all, tables=self.context.tables)

    async def dispose(self) -> None:
        """Dispose of the pooled engine, if one was created."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None


# Set during app lifespan, keyed by context name
_context_services: dict[str, DbContextService] = {}


def get_context_service(context: DbContext) -> DbContextService:
    """Get the DbContextService registered for a context."""
    service = _context_services.get(context.name)
    if service is None:
        raise RuntimeError(f"No DbContextService registered for {context.name}")
    return service


def set_context_service(service: DbContextService) -> None:
    """Register the DbContextService for its context."""
    _context_services[service.context.name] = service


def clear_context_services() -> None:
    """Unregister all DbContextServices."""
    _context_services.clear()


async def get_hits_session() -> AsyncGenerator[AsyncSession]:
    """Yield a unit-of-work session for the Hits catalog."""
    async with get_context_service(HITS_CONTEXT).session_scope() as session:
        yield session


async def get_roles_session() -> AsyncGenerator[AsyncSession]:
    """Yield a unit-of-work session for the app user/role tables."""
    async with get_context_service(APP_USER_ROLES_CONTEXT).session_scope() as session:
        yield session


SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def get_roles_session_scope() -> SessionScope:
    """
    Return an opener for app user/role sessions.

    Unlike get_roles_session, no session is opened until the returned callable
    is used, so requests that never touch the roles tables skip the database.
    """
    return get_context_service(APP_USER_ROLES_CONTEXT).session_scope
