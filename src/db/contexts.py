"""Database context definitions: which models live together in one database."""
from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy import Table

from db.seed_data import app_user_roles_seed, hits_seed
from models import AppRole, AppUser, Artist, Base, Song


@dataclass(frozen=True)
class DbContext:
    """
    A named group of models sharing one connection string.

    The name is the key used to look up the connection string in
    `Settings.db_contexts`.
    """

    name: str
    models: tuple[type[Base], ...]
    seed: Callable[[], list[Base]] | None = field(default=None, compare=False)

    @property
    def tables(self) -> list[Table]:
        """Tables owned by this context, in model order."""
        return [model.__table__ for model in self.models]


HITS_CONTEXT = DbContext(
    name="HitsContext",
    models=(Artist, Song),
    seed=hits_seed,
)

APP_USER_ROLES_CONTEXT = DbContext(
    name="AppUserRolesContext",
    models=(AppRole, AppUser),
    seed=app_user_roles_seed,
)
