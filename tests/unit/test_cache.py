"""Tests for the index cache."""

from __future__ import annotations

import pytest

from helmsource.core.cache import CacheFullError, IndexCache


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> Clock:
    return Clock()


class TestIndexCache:
    """TTL, capacity and expiration extension."""

    def test_set_and_get(self, clock):
        cache = IndexCache(2, clock=clock)
        cache.set("a", {"entries": {}}, ttl=10)
        assert cache.get("a") == {"entries": {}}
        assert cache.item_count() == 1

    def test_items_expire(self, clock):
        cache = IndexCache(2, clock=clock)
        cache.set("a", 1, ttl=10)
        clock.now = 11
        assert cache.get("a") is None

    def test_full_cache_rejects_new_keys(self, clock):
        cache = IndexCache(1, clock=clock)
        cache.set("a", 1, ttl=10)
        with pytest.raises(CacheFullError):
            cache.set("b", 2, ttl=10)
        cache.set("a", 3, ttl=10)
        assert cache.get("a") == 3

    def test_expired_items_make_room(self, clock):
        cache = IndexCache(1, clock=clock)
        cache.set("a", 1, ttl=10)
        clock.now = 20
        cache.set("b", 2, ttl=10)
        assert cache.get("b") == 2

    def test_set_expiration_extends_ttl(self, clock):
        cache = IndexCache(2, clock=clock)
        cache.set("a", 1, ttl=10)
        clock.now = 8
        cache.set_expiration("a", 10)
        clock.now = 15
        assert cache.get("a") == 1
        assert cache.expiration("a") == pytest.approx(3)

    def test_set_expiration_ignores_missing(self, clock):
        cache = IndexCache(2, clock=clock)
        cache.set_expiration("missing", 10)
        assert cache.expiration("missing") is None
        assert cache.item_count() == 0

    def test_delete(self, clock):
        cache = IndexCache(2, clock=clock)
        cache.set("a", 1, ttl=10)
        cache.delete("a")
        assert cache.get("a") is None
