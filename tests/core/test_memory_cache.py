"""Tests for the bounded in-process cache store."""
import pytest

from core.memory_cache import BoundedCache


def test__try_add__only_adds_when_absent() -> None:
    cache: BoundedCache[str] = BoundedCache(10)
    assert cache.try_add("a", "first") is True
    assert cache.try_add("a", "second") is False
    assert cache.get("a") == "first"


def test__try_update__replaces_only_matching_current_value() -> None:
    cache: BoundedCache[list[int]] = BoundedCache(10)
    original = [1]
    cache.set("a", original)

    # Equal but not the same object
    assert cache.try_update("a", [2], [1]) is False
    assert cache.get("a") is original

    replacement = [3]
    assert cache.try_update("a", replacement, original) is True
    assert cache.get("a") is replacement

    # Second writer comparing against the stale value loses
    assert cache.try_update("a", [4], original) is False
    assert cache.get("a") is replacement


def test__try_update__missing_key_returns_false() -> None:
    cache: BoundedCache[str] = BoundedCache(10)
    assert cache.try_update("missing", "value", "other") is False
    assert "missing" not in cache


def test__evicts_least_recently_used() -> None:
    cache: BoundedCache[int] = BoundedCache(2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)

    assert "a" in cache
    assert "b" not in cache
    assert "c" in cache
    assert len(cache) == 2


def test__discard_and_clear() -> None:
    cache: BoundedCache[int] = BoundedCache(5)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.discard("a")
    cache.discard("not-there")
    assert cache.get("a") is None
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test__max_entries_must_be_positive() -> None:
    with pytest.raises(ValueError, match="max_entries"):
        BoundedCache(0)
