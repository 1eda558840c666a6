"""
Per-entity cache of filtered row counts.

Paging through a grid issues the same filtered count query on every page
request. The count cache keeps the last count per filter fingerprint and only
re-runs the count once the entry is older than the tolerance.
"""
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.memory_cache import BoundedCache, CacheStore
from schemas.query import QueryArgs

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 60.0


@dataclass(frozen=True)
class CountAndDate:
    """A cached count and the clock reading when it was computed."""

    count: int
    last_calculated: float


def fingerprint(query_args: QueryArgs | None) -> str:
    """
    Build the cache key for a query: filter text followed by its parameters.

    Parameters are serialized as a JSON array so distinct parameter lists never
    share a key. Values JSON cannot represent (dates, UUIDs) use str(); a
    self-referencing value falls back to repr().
    """
    if query_args is None:
        return ""

    key = query_args.filter or ""
    parameters = query_args.filter_parameters
    if not parameters:
        return key

    try:
        return key + json.dumps(parameters, default=str, sort_keys=True)
    except ValueError:
        # Circular reference
        return key + repr(parameters)


class CountCache:
    """
    Count cache for one entity type.

    Concurrent requests share an instance; all reads and writes go through the
    CacheStore's atomic operations. When two requests refresh the same stale
    entry, only the first compare-and-swap wins; the loser still returns the
    count it computed.
    """

    def __init__(
        self,
        entity_name: str,
        max_entries: int = 1024,
        default_tolerance: float = DEFAULT_TOLERANCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        store: CacheStore[CountAndDate] | None = None,
    ) -> None:
        self.entity_name = entity_name
        self.default_tolerance = default_tolerance
        self._clock = clock
        self._store: CacheStore[CountAndDate] = store if store is not None else BoundedCache(max_entries)

    @property
    def store(self) -> CacheStore[CountAndDate]:
        """The underlying store (exposed for inspection in tests)."""
        return self._store

    async def get_count(
        self,
        db: AsyncSession,
        filtered_query: Select,
        query_args: QueryArgs | None = None,
        tolerance: float | None = None,
    ) -> int:
        """
        Get the number of rows matched by filtered_query.

        Args:
            db: Session used when the count must be (re)computed.
            filtered_query: The filtered, unsorted, unpaged query.
            query_args: Source of the fingerprint (filter and parameters).
            tolerance: Maximum age in seconds before the count is recomputed.
                Defaults to the cache's default tolerance.
        """
        tolerance = self.default_tolerance if tolerance is None else tolerance
        key = fingerprint(query_args)

        entry = self._store.get(key)
        if entry is None:
            count = await self._execute_count(db, filtered_query)
            self._store.try_add(key, CountAndDate(count, self._clock()))
            logger.debug("count_cache_miss entity=%s key=%r count=%s", self.entity_name, key, count)
            return count

        if self._clock() - entry.last_calculated >= tolerance:
            count = await self._execute_count(db, filtered_query)
            if self._store.try_update(key, CountAndDate(count, self._clock()), entry):
                logger.debug(
                    "count_cache_refresh entity=%s key=%r count=%s",
                    self.entity_name,
                    key,
                    count,
                )
            else:
                logger.debug("count_cache_refresh_lost entity=%s key=%r", self.entity_name, key)
            return count

        logger.debug("count_cache_hit entity=%s key=%r count=%s", self.entity_name, key, entry.count)
        return entry.count

    @staticmethod
    async def _execute_count(db: AsyncSession, filtered_query: Select) -> int:
        count_query = select(func.count()).select_from(filtered_query.subquery())
        result = await db.execute(count_query)
        return result.scalar() or 0


class CountCacheRegistry:
    """One CountCache per entity type, created on first request."""

    def __init__(
        self,
        max_entries: int = 1024,
        default_tolerance: float = DEFAULT_TOLERANCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_entries = max_entries
        self._default_tolerance = default_tolerance
        self._clock = clock
        self._caches: dict[type, CountCache] = {}

    def for_model(self, model: type) -> CountCache:
        """Get (or create) the count cache for a model class."""
        cache = self._caches.get(model)
        if cache is None:
            cache = self._caches.setdefault(
                model,
                CountCache(
                    model.__name__,
                    max_entries=self._max_entries,
                    default_tolerance=self._default_tolerance,
                    clock=self._clock,
                ),
            )
        return cache


# Global count cache registry (set during app startup)
_count_cache_registry: CountCacheRegistry | None = None


def get_count_cache_registry() -> CountCacheRegistry | None:
    """Get the global count cache registry."""
    return _count_cache_registry


def set_count_cache_registry(registry: CountCacheRegistry | None) -> None:
    """Set the global count cache registry."""
    global _count_cache_registry  # noqa: PLW0603
    _count_cache_registry = registry
