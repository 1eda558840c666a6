"""Tests against a real PostgreSQL database (asyncpg driver)."""
from collections.abc import AsyncGenerator, Callable
from uuid import uuid4

import pytest
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.roles import RoleResolver, RolesCache
from db.contexts import APP_USER_ROLES_CONTEXT, HITS_CONTEXT
from db.seed_data import app_user_roles_seed
from db.session import DbContextService, DbContextType
from models import AppRole, AppUser, Artist, Song
from services.app_role_service import AppRoleService
from services.artist_service import ArtistService
from services.crud_service import CrudServiceDependencies
from services.exceptions import (
    CannotInsertNullError,
    ReferenceConstraintError,
    UniqueConstraintError,
)
from services.song_service import SongService

MakeDeps = Callable[..., CrudServiceDependencies]


@pytest.fixture
async def pg_hits_session(postgres_settings: Settings) -> AsyncGenerator[AsyncSession]:
    """A Hits catalog session inside a transaction that is rolled back afterwards."""
    service = DbContextService(HITS_CONTEXT, postgres_settings)
    await service.create_tables()
    try:
        async with service.open_test_session(DbContextType.OPEN_TRANSACTION) as session:
            yield session
    finally:
        await service.dispose()


@pytest.fixture
async def pg_roles_session(postgres_settings: Settings) -> AsyncGenerator[AsyncSession]:
    """A seeded app user/role session inside a transaction that is rolled back afterwards."""
    service = DbContextService(APP_USER_ROLES_CONTEXT, postgres_settings)
    await service.create_tables()
    try:
        async with service.open_test_session(DbContextType.OPEN_TRANSACTION) as session:
            session.add_all(app_user_roles_seed())
            await session.flush()
            session.expunge_all()
            yield session
    finally:
        await service.dispose()


async def test__open_transaction__commits_are_rolled_back(postgres_settings: Settings) -> None:
    service = DbContextService(HITS_CONTEXT, postgres_settings)
    await service.create_tables()
    name = f"Heart {uuid4()}"
    try:
        async with service.open_test_session(DbContextType.OPEN_TRANSACTION) as session:
            session.add(Artist(name=name, is_solo=False, sys_guid=uuid4()))
            await session.commit()
            assert await session.scalar(select(func.count()).where(Artist.name == name)) == 1

        async with service.open_test_session(DbContextType.PRODUCTION) as session:
            assert await session.scalar(select(func.count()).where(Artist.name == name)) == 0
    finally:
        await service.dispose()


class TestConstraintCategories:
    """Integrity errors are categorized by the PostgreSQL SQLSTATE."""

    @pytest.fixture
    async def heart(self, pg_hits_session: AsyncSession, make_deps: MakeDeps) -> Artist:
        return await ArtistService(make_deps(pg_hits_session)).create(Artist(name="Heart", is_solo=False))

    async def test__duplicate_guid(
        self, pg_hits_session: AsyncSession, make_deps: MakeDeps, heart: Artist,
    ) -> None:
        songs = SongService(make_deps(pg_hits_session))
        barracuda = await songs.create(Song(title="Barracuda", artist_id=heart.id))
        with pytest.raises(UniqueConstraintError):
            await songs.create(Song(title="Copy", artist_id=heart.id, sys_guid=barracuda.sys_guid))

    async def test__unknown_reference(self, pg_hits_session: AsyncSession, make_deps: MakeDeps) -> None:
        with pytest.raises(ReferenceConstraintError):
            await SongService(make_deps(pg_hits_session)).create(Song(title="Orphan", artist_id=999_999))

    async def test__missing_required_value(
        self, pg_hits_session: AsyncSession, make_deps: MakeDeps, heart: Artist,
    ) -> None:
        with pytest.raises(CannotInsertNullError):
            await SongService(make_deps(pg_hits_session)).create(Song(title=None, artist_id=heart.id))

    async def test__referenced_row_is_rejected(
        self, pg_hits_session: AsyncSession, make_deps: MakeDeps, heart: Artist,
    ) -> None:
        await SongService(make_deps(pg_hits_session)).create(Song(title="Barracuda", artist_id=heart.id))
        with pytest.raises(ReferenceConstraintError):
            await ArtistService(make_deps(pg_hits_session)).delete(heart.id)


class TestAppRoles:
    """Role lookups and role deletes on PostgreSQL."""

    async def test__role_lookup(self, pg_roles_session: AsyncSession, settings: Settings) -> None:
        resolver = RoleResolver(RolesCache(), settings.security)
        assert await resolver.get_role(pg_roles_session, "Maria") == "admin"
        assert await resolver.get_role(pg_roles_session, "Nobody") == "undefined"

    async def test__deleting_role_row_nulls_user_role(self, pg_roles_session: AsyncSession) -> None:
        await pg_roles_session.execute(delete(AppRole).where(AppRole.id == -2))
        role_id = await pg_roles_session.scalar(select(AppUser.role_id).where(AppUser.user_name == "Maria"))
        assert role_id is None

    async def test__service_delete_detaches_users(
        self, pg_roles_session: AsyncSession, make_deps: MakeDeps,
    ) -> None:
        await AppRoleService(make_deps(pg_roles_session)).delete(-4)
        huan = (
            await pg_roles_session.execute(
                select(AppUser.role_id, AppUser.sys_user).where(AppUser.user_name == "Huan"),
            )
        ).one()
        assert tuple(huan) == (None, "Maria")
