"""
Seed rows for the Hits catalog and the app user/role tables.

Seeds are applied when a context is opened in in-memory mode. Rows carry
negative (roles/users) or small positive (catalog) ids and deterministic
sys_guid values so tests can refer to them directly.
"""
from datetime import date
from uuid import UUID

from models import AppRole, AppUser, Artist, Base, Song

SEED_USER = "SYSTEM"


def guid_from_id(entity_id: int) -> UUID:
    """
    Build a deterministic UUID from an integer id.

    The absolute value of the id is written into the first and last groups,
    e.g. 1 -> 00000001-0000-0000-0000-000000000001.
    """
    value = abs(entity_id)
    return UUID(f"{value:08x}-0000-0000-0000-{value:012x}")


ARTISTS = [
    {"id": 1, "name": "Led Zeppelin", "is_solo": False},
    {"id": 2, "name": "Eagles", "is_solo": False},
    {"id": 3, "name": "Queen", "is_solo": False},
    {"id": 4, "name": "Fleetwood Mac", "is_solo": False},
    {"id": 5, "name": "Elton John", "is_solo": True},
    {"id": 6, "name": "Carly Simon", "is_solo": True},
]

SONGS = [
    {"id": 1, "title": "Whole Lotta Love", "release_date": date(1969, 11, 7), "artist_id": 1},
    {"id": 2, "title": "Immigrant Song", "release_date": date(1970, 11, 5), "artist_id": 1},
    {"id": 3, "title": "Black Dog", "release_date": date(1971, 12, 2), "artist_id": 1},
    {"id": 4, "title": "Kashmir", "release_date": date(1975, 2, 24), "artist_id": 1},
    {"id": 5, "title": "Fool in the Rain", "release_date": date(1979, 12, 7), "artist_id": 1},
    {"id": 6, "title": "Take It Easy", "release_date": date(1972, 5, 1), "artist_id": 2},
    {"id": 7, "title": "Hotel California", "release_date": date(1977, 2, 22), "artist_id": 2},
    {"id": 8, "title": "Desperado", "release_date": date(1973, 4, 17), "artist_id": 2},
    {"id": 9, "title": "Bohemian Rhapsody", "release_date": date(1975, 10, 31), "artist_id": 3},
    {"id": 10, "title": "Killer Queen", "release_date": date(1974, 10, 11), "artist_id": 3},
    {"id": 11, "title": "Dreams", "release_date": date(1977, 3, 24), "artist_id": 4},
    {"id": 12, "title": "Go Your Own Way", "release_date": date(1976, 12, 20), "artist_id": 4},
    {"id": 13, "title": "Rocket Man", "release_date": date(1972, 4, 14), "artist_id": 5},
    {"id": 14, "title": "Your Song", "release_date": date(1970, 10, 26), "artist_id": 5},
    {"id": 15, "title": "You're So Vain", "release_date": date(1972, 11, 8), "artist_id": 6},
    {"id": 16, "title": "Anticipation", "release_date": date(1971, 11, 1), "artist_id": 6},
]

APP_ROLES = [
    {"id": -1, "role_name": "IT"},
    {"id": -2, "role_name": "admin"},
    {"id": -3, "role_name": "user"},
    {"id": -4, "role_name": "readonly"},
    {"id": -5, "role_name": "disabled"},
]

APP_USERS = [
    {"id": -1, "user_name": "Starbuck", "role_id": -1},
    {"id": -2, "user_name": "Maria", "role_id": -2},
    {"id": -3, "user_name": "Darius", "role_id": -3},
    {"id": -4, "user_name": "Huan", "role_id": -4},
    {"id": -5, "user_name": "Jack", "role_id": -5},
]


def _build(model: type[Base], rows: list[dict]) -> list[Base]:
    return [
        model(**row, sys_user=SEED_USER, sys_guid=guid_from_id(row["id"]))
        for row in rows
    ]


def hits_seed() -> list[Base]:
    """Artist and song rows, parents first."""
    return _build(Artist, ARTISTS) + _build(Song, SONGS)


def app_user_roles_seed() -> list[Base]:
    """Role and user rows, roles first."""
    return _build(AppRole, APP_ROLES) + _build(AppUser, APP_USERS)
