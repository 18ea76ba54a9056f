"""Unit tests for the TTL cache and cache-key construction."""

from __future__ import annotations

import pytest

from src.analytics.models import FilterOptions
from src.analytics.services.cache import TTLCache, make_cache_key


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.mark.unit
def test_get_returns_stored_value(clock: FakeClock) -> None:
    cache: TTLCache[str] = TTLCache(ttl_seconds=300, clock=clock)
    cache.set("k", "v")
    assert cache.get("k") == "v"
    assert "k" in cache


@pytest.mark.unit
def test_missing_key_is_none(clock: FakeClock) -> None:
    cache: TTLCache[str] = TTLCache(ttl_seconds=300, clock=clock)
    assert cache.get("absent") is None


@pytest.mark.unit
def test_entry_is_fresh_exactly_at_ttl(clock: FakeClock) -> None:
    cache: TTLCache[str] = TTLCache(ttl_seconds=300, clock=clock)
    cache.set("k", "v")
    clock.advance(300)
    assert cache.get("k") == "v"


@pytest.mark.unit
def test_entry_expires_one_millisecond_after_ttl(clock: FakeClock) -> None:
    cache: TTLCache[str] = TTLCache(ttl_seconds=300, clock=clock)
    cache.set("k", "v")
    clock.advance(300.001)

    assert cache.get("k") is None
    # the stale read purges the entry
    assert "k" not in cache
    assert len(cache) == 0


@pytest.mark.unit
def test_set_existing_key_refreshes_timestamp(clock: FakeClock) -> None:
    cache: TTLCache[str] = TTLCache(ttl_seconds=10, clock=clock)
    cache.set("k", "old")
    clock.advance(8)
    cache.set("k", "new")
    clock.advance(8)
    assert cache.get("k") == "new"


@pytest.mark.unit
def test_capacity_evicts_oldest_inserted(clock: FakeClock) -> None:
    cache: TTLCache[int] = TTLCache(ttl_seconds=300, max_entries=2, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")  # reads do not refresh position
    cache.set("c", 3)

    assert "a" not in cache
    assert cache.get("b") == 2
    assert cache.get("c") == 3
    assert len(cache) == 2


@pytest.mark.unit
def test_updating_existing_key_at_capacity_does_not_evict(clock: FakeClock) -> None:
    cache: TTLCache[int] = TTLCache(ttl_seconds=300, max_entries=2, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)

    assert cache.get("a") == 10
    assert cache.get("b") == 2


@pytest.mark.unit
def test_clear_empties_cache(clock: FakeClock) -> None:
    cache: TTLCache[int] = TTLCache(ttl_seconds=300, clock=clock)
    cache.set("a", 1)
    cache.clear()
    assert len(cache) == 0


@pytest.mark.unit
@pytest.mark.parametrize(("ttl", "max_entries"), [(0, 10), (-1, 10), (10, 0)])
def test_invalid_configuration_is_rejected(ttl: float, max_entries: int) -> None:
    with pytest.raises(ValueError):
        TTLCache(ttl_seconds=ttl, max_entries=max_entries)


class TestMakeCacheKey:
    @pytest.mark.unit
    def test_without_filters(self) -> None:
        assert make_cache_key("hierarchical-data") == "hierarchical-data-no-filters"

    @pytest.mark.unit
    def test_filter_order_does_not_change_key(self) -> None:
        first = FilterOptions(regions=["Oaxaca", "Jalisco"], roles=["movilizador", "lider"])
        second = FilterOptions(roles=["lider", "movilizador"], regions=["Jalisco", "Oaxaca"])
        assert make_cache_key("op", first) == make_cache_key("op", second)

    @pytest.mark.unit
    def test_different_filters_give_different_keys(self) -> None:
        assert make_cache_key("op", FilterOptions(active_only=True)) != make_cache_key(
            "op", FilterOptions()
        )

    @pytest.mark.unit
    def test_extra_parts_are_appended(self) -> None:
        assert make_cache_key("op", None, 10) == "op-no-filters-10"
