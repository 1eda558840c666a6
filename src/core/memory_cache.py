"""Bounded in-process cache store shared by the count and role caches."""
import threading
from collections import OrderedDict
from typing import Generic, Protocol, TypeVar

V = TypeVar("V")


class CacheStore(Protocol[V]):
    """
    Capability interface for process-local caches.

    Only atomic operations are exposed so callers never need their own locking:
    get, add-if-absent, compare-and-swap update, unconditional set, and removal.
    """

    def get(self, key: str) -> V | None:
        """Return the value for key, or None on miss."""
        ...

    def try_add(self, key: str, value: V) -> bool:
        """Add value only if key is absent. Returns True if added."""
        ...

    def try_update(self, key: str, value: V, comparison: V) -> bool:
        """Replace the value only if the current value is comparison. Returns True if replaced."""
        ...

    def set(self, key: str, value: V) -> None:
        """Add or replace the value for key."""
        ...

    def discard(self, key: str) -> None:
        """Remove key if present."""
        ...

    def __len__(self) -> int:
        ...


class BoundedCache(Generic[V]):
    """
    Thread-safe LRU store with a fixed maximum number of entries.

    When full, adding a new key evicts the least recently used entry.
    Expiry is the caller's concern: values carry their own timestamps.
    """

    def __init__(self, max_entries: int) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._max_entries = max_entries
        self._entries: OrderedDict[str, V] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def max_entries(self) -> int:
        """Maximum number of entries held before eviction."""
        return self._max_entries

    def get(self, key: str) -> V | None:
        with self._lock:
            value = self._entries.get(key)
            if value is not None:
                self._entries.move_to_end(key)
            return value

    def try_add(self, key: str, value: V) -> bool:
        with self._lock:
            if key in self._entries:
                return False
            self._insert(key, value)
            return True

    def try_update(self, key: str, value: V, comparison: V) -> bool:
        with self._lock:
            current = self._entries.get(key)
            if current is None or current is not comparison:
                return False
            self._entries[key] = value
            self._entries.move_to_end(key)
            return True

    def set(self, key: str, value: V) -> None:
        with self._lock:
            if key in self._entries:
                self._entries[key] = value
                self._entries.move_to_end(key)
            else:
                self._insert(key, value)

    def discard(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def _insert(self, key: str, value: V) -> None:
        # Caller holds the lock
        self._entries[key] = value
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
