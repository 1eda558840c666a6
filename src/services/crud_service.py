"""
Generic CRUD service for EntityBase models.

Provides create/update/delete with audit-user stamping, key lookups, and
filter/sort/page queries driven by QueryArgs. Entity-specific behavior is
defined via class attributes, the abstract _get_query_fields(), and the
optional lifecycle hooks.

Services use flush() only; the commit happens once at the end of the request
(see DbContextService.session_scope).
"""
import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import Select, func, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from core.config import Settings, get_settings
from core.count_cache import CountCache, CountCacheRegistry
from core.principal import NAME_CLAIM, ROLE_CLAIM, Claim, ClaimsPrincipal
from models.base import EntityBase, TemporalMixin
from schemas.query import DynamicQueryResult, PageResult, QueryArgs
from services.exceptions import (
    CannotInsertNullError,
    EntityNotFoundError,
    PersistenceError,
    ReferenceConstraintError,
    UniqueConstraintError,
)
from services.query_builder import (
    FieldMap,
    compile_filter,
    compile_includes,
    compile_order_by,
    compile_projection,
)
from services.query_expressions import (
    parse_filter,
    parse_includes,
    parse_order_by,
    parse_select,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=EntityBase)

# Columns that update() never copies from the input
_PROTECTED_FIELDS = frozenset({"sys_guid", "sys_user", "sys_start", "sys_end"})

_UNIQUE_SQLSTATE = "23505"
_FOREIGN_KEY_SQLSTATE = "23503"
_NOT_NULL_SQLSTATE = "23502"


def _has_text(value: str | None) -> bool:
    return bool(value and value.strip())


def categorize_integrity_error(entity_name: str, exc: IntegrityError) -> PersistenceError:
    """
    Map a database integrity error to the persistence error taxonomy.

    Uses the driver's SQLSTATE when it reports one (PostgreSQL), otherwise the
    message text (SQLite). Unrecognized errors become a plain PersistenceError.
    """
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    message = str(exc.orig)
    lowered = message.lower()

    if sqlstate == _UNIQUE_SQLSTATE or "unique constraint" in lowered:
        return UniqueConstraintError(entity_name, message)
    if sqlstate == _FOREIGN_KEY_SQLSTATE or "foreign key constraint" in lowered:
        return ReferenceConstraintError(entity_name, message)
    if sqlstate == _NOT_NULL_SQLSTATE or "not null constraint" in lowered:
        return CannotInsertNullError(entity_name, message)
    return PersistenceError(entity_name, message)


@dataclass
class CrudServiceDependencies:
    """Everything a CrudService needs for one request."""

    db: AsyncSession
    principal: ClaimsPrincipal
    count_cache_registry: CountCacheRegistry
    settings: Settings = field(default_factory=get_settings)

    @classmethod
    def for_testing(
        cls,
        db: AsyncSession,
        user_name: str,
        role: str,
        settings: Settings | None = None,
        count_cache_registry: CountCacheRegistry | None = None,
    ) -> "CrudServiceDependencies":
        """Dependencies for a service acting as user_name with the given role."""
        settings = settings or get_settings()
        principal = ClaimsPrincipal(
            [
                Claim(settings.security.idp_user_name_claim, user_name),
                Claim(NAME_CLAIM, user_name),
                Claim(ROLE_CLAIM, role),
            ],
            authentication_type="Test",
        )
        return cls(
            db=db,
            principal=principal,
            count_cache_registry=count_cache_registry or CountCacheRegistry(),
            settings=settings,
        )


class CrudService(ABC, Generic[T]):
    """
    Abstract base class for entity CRUD operations.

    Subclasses must define:
    - model: The SQLAlchemy model class
    - entity_name: Human-readable name for error messages (e.g., "Song")

    Subclasses must implement:
    - _get_query_fields(): columns that filter/sort/select expressions may reference

    Subclasses may override:
    - _get_navigations(): relationships that may be eager-loaded via expand/include
    - count_cache_expiration_seconds: count cache tolerance (defaults to settings)
    - the before_/after_ lifecycle hooks
    """

    model: type[T]
    entity_name: str
    count_cache_expiration_seconds: float | None = None

    def __init__(self, deps: CrudServiceDependencies) -> None:
        self.db = deps.db
        self.principal = deps.principal
        self.settings = deps.settings
        self.user_name = deps.principal.find_first(deps.settings.security.idp_user_name_claim)
        self.count_cache: CountCache = deps.count_cache_registry.for_model(self.model)
        self.field_map = FieldMap(
            self.entity_name,
            self._get_query_fields(),
            self._get_navigations(),
        )

    # --- Abstract / overridable configuration ---

    @abstractmethod
    def _get_query_fields(self) -> dict[str, InstrumentedAttribute]:
        """
        Get mapping of queryable field names to SQLAlchemy columns.

        Example for Song:
            return {
                "id": Song.id,
                "title": Song.title,
                "release_date": Song.release_date,
                ...
            }
        """
        ...

    def _get_navigations(self) -> dict[str, InstrumentedAttribute]:
        """Get mapping of navigation names to relationships that may be eager-loaded."""
        return {}

    @property
    def count_cache_tolerance(self) -> float:
        if self.count_cache_expiration_seconds is not None:
            return self.count_cache_expiration_seconds
        return self.settings.count_cache_tolerance_seconds

    # --- Lifecycle hooks (no-ops by default) ---

    async def before_create(self, entity: T) -> None:
        pass

    async def after_create(self, entity: T) -> None:
        pass

    async def before_update(self, existing: T) -> None:
        pass

    async def after_update(self, existing: T) -> None:
        pass

    async def before_delete(self, existing: T) -> None:
        pass

    async def after_delete(self, existing: T) -> None:
        pass

    # --- Write operations ---

    async def create(self, entity: T) -> T:
        """
        Insert a new entity.

        Assigns sys_guid when unset and stamps sys_user on every pending row.
        """
        with self.db.no_autoflush:
            await self.before_create(entity)

            if entity.sys_guid is None:
                entity.sys_guid = uuid4()

            self.db.add(entity)
            self._stamp_sys_user()
        await self._flush()
        await self.db.refresh(entity)

        await self.after_create(entity)
        logger.debug(
            "crud_create entity=%s id=%s user=%s",
            self.entity_name,
            entity.id,
            self.user_name,
        )
        return entity

    async def update(self, values: T | Mapping[str, Any] | BaseModel, *key: Any) -> T:
        """
        Copy values onto the existing entity with the given primary key.

        values may be a model instance, a mapping of attribute names, or a
        pydantic model (unset fields are skipped). The primary key and sys_guid
        are never overwritten.

        Raises:
            EntityNotFoundError: If no entity has the key.
            ValueError: If values names a field the entity does not have.
        """
        # Pending rows must be stamped before anything flushes them
        with self.db.no_autoflush:
            existing = await self.find_required(*key)

            await self.before_update(existing)

            for name, value in self._extract_values(values).items():
                setattr(existing, name, value)

            self._stamp_sys_user()
        await self._flush()
        await self.db.refresh(existing)

        await self.after_update(existing)
        logger.debug(
            "crud_update entity=%s key=%s user=%s",
            self.entity_name,
            key,
            self.user_name,
        )
        return existing

    async def delete(self, *key: Any) -> None:
        """
        Delete the entity with the given primary key.

        sys_user is stamped and flushed before the row is removed so the
        acting user is recorded against the row's final state.

        Raises:
            EntityNotFoundError: If no entity has the key.
        """
        with self.db.no_autoflush:
            existing = await self.find_required(*key)

            await self.before_delete(existing)

            existing.sys_user = self.user_name
            self._stamp_sys_user()
        await self._flush()

        await self.db.delete(existing)
        await self._flush()

        await self.after_delete(existing)
        logger.debug(
            "crud_delete entity=%s key=%s user=%s",
            self.entity_name,
            key,
            self.user_name,
        )

    def _stamp_sys_user(self) -> None:
        """Set sys_user on every added, modified, or deleted row in the session."""
        for instance in (*self.db.new, *self.db.dirty, *self.db.deleted):
            if isinstance(instance, EntityBase):
                instance.sys_user = self.user_name

    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except IntegrityError as exc:
            error = categorize_integrity_error(self.entity_name, exc)
            logger.info(
                "crud_integrity_error entity=%s category=%s",
                self.entity_name,
                type(error).__name__,
            )
            raise error from exc

    def _extract_values(self, values: T | Mapping[str, Any] | BaseModel) -> dict[str, Any]:
        mapper = inspect(self.model)
        column_names = {attr.key for attr in mapper.column_attrs}
        protected = _PROTECTED_FIELDS | {mapper.get_property_by_column(c).key for c in mapper.primary_key}

        if isinstance(values, BaseModel):
            raw = values.model_dump(exclude_unset=True)
        elif isinstance(values, Mapping):
            raw = dict(values)
        elif isinstance(values, self.model):
            # Only attributes that were explicitly set (or loaded) on the instance
            state = inspect(values)
            raw = {name: state.dict[name] for name in column_names if name in state.dict}
        else:
            raise TypeError(f"Cannot update {self.entity_name} from {type(values).__name__}")

        unknown = set(raw) - column_names
        if unknown:
            raise ValueError(f"{self.entity_name} has no field(s): {', '.join(sorted(unknown))}")

        return {name: value for name, value in raw.items() if name not in protected}

    # --- Basic reads ---

    async def find(self, *key: Any) -> T | None:
        """Get an entity by primary key, or None if not found."""
        return await self.db.get(self.model, key[0] if len(key) == 1 else key)

    async def find_required(self, *key: Any) -> T:
        """
        Get an entity by primary key.

        Raises:
            EntityNotFoundError: If no entity has the key.
        """
        entity = await self.find(*key)
        if entity is None:
            raise EntityNotFoundError(self.entity_name, key)
        return entity

    # --- Paged queries ---

    async def get_page(self, query_args: QueryArgs | None = None) -> PageResult[T]:
        """
        Get a page of entities. Any select/projection in query_args is ignored.

        Returns:
            PageResult with the page of entities and the filtered count across pages.
        """
        query, count = await self._build_query(query_args)
        return PageResult(data=await self._load_untracked(query), count_across_pages=count)

    async def get_page_select(self, query_args: QueryArgs | None = None) -> PageResult[dict[str, Any]]:
        """
        Get a page of rows as dicts, applying query_args.select when present.

        Without a projection, every column of the entity is returned.
        """
        select_text = query_args.select if query_args else None
        query, count = await self._build_query(query_args, apply_includes=not _has_text(select_text))
        return PageResult(
            data=await self._fetch_dicts(query, select_text),
            count_across_pages=count,
        )

    async def get_dynamic_query_result(
        self,
        select: str | None,
        include: str | None = None,
        where: str | None = None,
        order_by: str | None = None,
        skip: int | None = None,
        take: int | None = None,
        total_records: int | None = None,
    ) -> DynamicQueryResult[dict[str, Any]]:
        """
        Run a query from raw expression strings and return projected rows.

        include accepts ',' or ';' separators. current_page is derived from
        skip, take, and the caller's total_records (which may be stale);
        row_count is always the freshly computed count.
        """
        query_args = QueryArgs(
            filter=where,
            select=select,
            expand=include,
            order_by=order_by,
            skip=skip,
            top=take,
        )
        query, count = await self._build_query(query_args, apply_includes=not _has_text(select))
        data = await self._fetch_dicts(query, select)
        return self._dynamic_result(data, count, skip, take, total_records)

    async def get_typed_query_result(
        self,
        include: str | None = None,
        where: str | None = None,
        order_by: str | None = None,
        skip: int | None = None,
        take: int | None = None,
        total_records: int | None = None,
    ) -> DynamicQueryResult[T]:
        """Like get_dynamic_query_result, but returns entities (no projection)."""
        page = await self.get_page(
            QueryArgs(filter=where, expand=include, order_by=order_by, skip=skip, top=take),
        )
        return self._dynamic_result(page.data, page.count_across_pages, skip, take, total_records)

    @staticmethod
    def _dynamic_result(
        data: list,
        row_count: int,
        skip: int | None,
        take: int | None,
        total_records: int | None,
    ) -> DynamicQueryResult:
        total = row_count if total_records is None else total_records
        skip_value = min(skip or 0, total)
        take_value = take if take else total - skip_value

        current_page = 1 + math.ceil(skip_value / take_value) if take_value > 0 else 1
        page_count = math.ceil(row_count / take) if take else 1

        return DynamicQueryResult(
            data=data,
            current_page=current_page,
            page_count=page_count,
            page_size=take_value,
            row_count=row_count,
        )

    async def _fetch_dicts(self, query: Select, select_text: str | None) -> list[dict[str, Any]]:
        if _has_text(select_text):
            columns = compile_projection(parse_select(select_text), self.field_map, select_text)
            with self.db.no_autoflush:
                result = await self.db.execute(query.with_only_columns(*columns))
            return [dict(row) for row in result.mappings().all()]

        column_names = [attr.key for attr in inspect(self.model).column_attrs]
        return [
            {name: getattr(entity, name) for name in column_names}
            for entity in await self._load_untracked(query)
        ]

    async def _load_untracked(self, query: Select) -> list[T]:
        """
        Run an entity query and detach every row it brought into the session.

        Changes made to the returned rows (or their eager-loaded navigations)
        are never written back. Rows the session was already tracking before
        the query are returned as the tracked instances. Pending changes are
        not flushed by the read.
        """
        with self.db.no_autoflush:
            already_tracked = set(self.db.identity_map.keys())
            result = await self.db.execute(query)
            entities = list(result.scalars().all())

        for identity in set(self.db.identity_map.keys()) - already_tracked:
            instance = self.db.identity_map.get(identity)
            if instance is not None:
                self.db.expunge(instance)
        return entities

    async def _build_query(
        self,
        query_args: QueryArgs | None,
        apply_includes: bool = True,
    ) -> tuple[Select, int]:
        """
        Build the filtered, sorted, paged query and count the filtered rows.

        Order: includes, filter, count (via the count cache), sort, skip, take.
        Includes are still validated when apply_includes is False (projections
        cannot carry eager-load options).
        """
        query_args = query_args or QueryArgs()
        query = select(self.model)

        loader_options = []
        if query_args.expand and query_args.expand.strip():
            loader_options = compile_includes(
                parse_includes(query_args.expand),
                self.field_map,
                query_args.expand,
            )

        if query_args.filter and query_args.filter.strip():
            condition = compile_filter(
                parse_filter(query_args.filter),
                self.field_map,
                query_args.filter_parameters,
                query_args.filter,
            )
            query = query.where(condition)

        with self.db.no_autoflush:
            count = await self.count_cache.get_count(
                self.db,
                query,
                query_args,
                self.count_cache_tolerance,
            )

        if loader_options and apply_includes:
            query = query.options(*loader_options)

        query = query.order_by(*self._order_clauses(query_args.order_by))

        if query_args.skip:
            query = query.offset(query_args.skip)
        if query_args.top:
            query = query.limit(query_args.top)

        return query, count

    def _order_clauses(self, order_by: str | None) -> list:
        """Sort clauses with the primary key appended as a tiebreaker."""
        primary_key = list(inspect(self.model).primary_key)
        clauses = []
        if order_by and order_by.strip():
            clauses = compile_order_by(parse_order_by(order_by), self.field_map, order_by)
        return clauses + [column.asc() for column in primary_key]

    # --- Temporal helpers ---

    def _require_temporal(self) -> None:
        if not issubclass(self.model, TemporalMixin):
            raise TypeError(f"{self.entity_name} does not have sys_start/sys_end columns")

    async def get_modified(self, as_of: datetime) -> list[T]:
        """Get entities created or updated strictly after as_of."""
        self._require_temporal()
        return await self._load_untracked(
            select(self.model).where(self.model.sys_start > as_of).order_by(self.model.sys_start),
        )

    async def get_max_sys_start(self) -> datetime | None:
        """Get the most recent create/update time across the entity's rows."""
        self._require_temporal()
        result = await self.db.execute(select(func.max(self.model.sys_start)))
        return result.scalar()
