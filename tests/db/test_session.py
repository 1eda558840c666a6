"""Tests for DbContextService session modes."""
from pathlib import Path

import pytest
from sqlalchemy import func, select

from core.config import Settings
from db.contexts import APP_USER_ROLES_CONTEXT, HITS_CONTEXT
from db.seed_data import SEED_USER, guid_from_id
from db.session import (
    DbContextService,
    DbContextType,
    clear_context_services,
    get_context_service,
    set_context_service,
)
from models import MAX_SYS_END, AppRole, AppUser, Artist, Song
from services.exceptions import ConfigurationError


def _file_settings(settings: Settings, path: Path) -> Settings:
    url = f"sqlite+aiosqlite:///{path}"
    return settings.model_copy(
        update={"db_contexts": {"HitsContext": url, "AppUserRolesContext": url}},
    )


def test__missing_connection_string_raises(settings: Settings) -> None:
    empty = settings.model_copy(update={"db_contexts": {}})
    with pytest.raises(ConfigurationError, match="HitsContext"):
        DbContextService(HITS_CONTEXT, empty)


def test__guid_from_id() -> None:
    assert str(guid_from_id(1)) == "00000001-0000-0000-0000-000000000001"
    assert str(guid_from_id(-5)) == "00000005-0000-0000-0000-000000000005"
    assert str(guid_from_id(255)) == "000000ff-0000-0000-0000-0000000000ff"


async def test__in_memory__hits_context_is_seeded(settings: Settings) -> None:
    service = DbContextService(HITS_CONTEXT, settings)
    async with service.open_test_session(DbContextType.IN_MEMORY) as session:
        assert await session.scalar(select(func.count()).select_from(Artist)) == 6
        assert await session.scalar(select(func.count()).select_from(Song)) == 16

        song = await session.get(Song, 9)
        assert song.title == "Bohemian Rhapsody"
        assert song.sys_user == SEED_USER
        assert song.sys_guid == guid_from_id(9)
        assert song.sys_start is not None
        assert song.sys_end.replace(tzinfo=None) == MAX_SYS_END.replace(tzinfo=None)


async def test__in_memory__app_user_roles_context_is_seeded(settings: Settings) -> None:
    service = DbContextService(APP_USER_ROLES_CONTEXT, settings)
    async with service.open_test_session(DbContextType.IN_MEMORY) as session:
        roles = (await session.scalars(select(AppRole.role_name).order_by(AppRole.id.desc()))).all()
        assert roles == ["IT", "admin", "user", "readonly", "disabled"]
        maria = await session.scalar(select(AppUser).where(AppUser.user_name == "Maria"))
        assert maria.role_id == -2


async def test__in_memory__without_seed_is_empty(settings: Settings) -> None:
    service = DbContextService(APP_USER_ROLES_CONTEXT, settings)
    async with service.open_test_session(DbContextType.IN_MEMORY, seed=False) as session:
        assert await session.scalar(select(func.count()).select_from(AppRole)) == 0


async def test__in_memory__sessions_are_isolated(settings: Settings) -> None:
    service = DbContextService(HITS_CONTEXT, settings)
    async with service.open_test_session(DbContextType.IN_MEMORY) as session:
        await session.delete(await session.get(Song, 1))
        await session.commit()
        assert await session.scalar(select(func.count()).select_from(Song)) == 15

    async with service.open_test_session(DbContextType.IN_MEMORY) as session:
        assert await session.scalar(select(func.count()).select_from(Song)) == 16


async def test__open_transaction__commits_are_rolled_back(settings: Settings, tmp_path: Path) -> None:
    service = DbContextService(HITS_CONTEXT, _file_settings(settings, tmp_path / "hits.db"))
    await service.create_tables()
    try:
        async with service.open_test_session(DbContextType.OPEN_TRANSACTION) as session:
            session.add(Artist(name="Heart", is_solo=False, sys_guid=guid_from_id(100)))
            await session.commit()
            assert await session.scalar(select(func.count()).select_from(Artist)) == 1

        async with service.open_test_session(DbContextType.PRODUCTION) as session:
            assert await session.scalar(select(func.count()).select_from(Artist)) == 0
    finally:
        await service.dispose()


async def test__session_scope__commits_on_success(settings: Settings, tmp_path: Path) -> None:
    service = DbContextService(HITS_CONTEXT, _file_settings(settings, tmp_path / "hits.db"))
    await service.create_tables()
    try:
        async with service.session_scope() as session:
            session.add(Artist(name="Heart", is_solo=False, sys_guid=guid_from_id(100)))

        async with service.session_scope() as session:
            assert await session.scalar(select(func.count()).select_from(Artist)) == 1
    finally:
        await service.dispose()


async def test__session_scope__rolls_back_on_error(settings: Settings, tmp_path: Path) -> None:
    service = DbContextService(HITS_CONTEXT, _file_settings(settings, tmp_path / "hits.db"))
    await service.create_tables()
    try:
        with pytest.raises(RuntimeError, match="boom"):
            async with service.session_scope() as session:
                session.add(Artist(name="Heart", is_solo=False, sys_guid=guid_from_id(100)))
                await session.flush()
                raise RuntimeError("boom")

        async with service.session_scope() as session:
            assert await session.scalar(select(func.count()).select_from(Artist)) == 0
    finally:
        await service.dispose()


def test__context_service_registry(settings: Settings) -> None:
    service = DbContextService(HITS_CONTEXT, settings)
    set_context_service(service)
    try:
        assert get_context_service(HITS_CONTEXT) is service
        with pytest.raises(RuntimeError, match="AppUserRolesContext"):
            get_context_service(APP_USER_ROLES_CONTEXT)
    finally:
        clear_context_services()


async def test__get_async_session__commits_at_end(settings: Settings, tmp_path: Path) -> None:
    service = DbContextService(HITS_CONTEXT, _file_settings(settings, tmp_path / "hits.db"))
    await service.create_tables()
    try:
        sessions = service.get_async_session()
        session = await anext(sessions)
        session.add(Artist(name="Heart", is_solo=False, sys_guid=guid_from_id(100)))
        with pytest.raises(StopAsyncIteration):
            await anext(sessions)

        async with service.session_scope() as session:
            assert await session.scalar(select(Artist.name)) == "Heart"
    finally:
        await service.dispose()
