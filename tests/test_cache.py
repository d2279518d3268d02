"""
Tests for the member lookup cache.
"""

import pytest

from utils.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def test_get_and_expire(clock):
    cache = TTLCache(ttl=10, clock=clock)
    cache.set("g1", {"alice": "1"})

    assert cache.get("g1") == {"alice": "1"}
    clock.now = 9.9
    assert cache.get("g1") == {"alice": "1"}
    clock.now = 10.0
    assert cache.get("g1") is None
    assert len(cache) == 0


def test_invalidate(clock):
    cache = TTLCache(ttl=10, clock=clock)
    cache.set("g1", 1)
    cache.invalidate("g1")
    cache.invalidate("missing")

    assert cache.get("g1") is None


def test_max_entries_evicts_oldest(clock):
    cache = TTLCache(ttl=10, max_entries=2, clock=clock)
    cache.set("a", 1)
    clock.now = 1
    cache.set("b", 2)
    clock.now = 2
    cache.set("c", 3)

    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get("c") == 3


def test_evict_expired(clock):
    cache = TTLCache(ttl=5, clock=clock)
    cache.set("a", 1)
    clock.now = 3
    cache.set("b", 2)
    clock.now = 6

    assert cache.evict_expired() == 1
    assert len(cache) == 1


def test_ttl_must_be_positive():
    with pytest.raises(ValueError):
        TTLCache(ttl=0)
