"""
Tests for the result cache and its backends.
"""

from conftest import BrokenCacheBackend
from jobradius.cache import (
    MemoryCacheBackend,
    NullCacheBackend,
    ResultCache,
    address_key,
    build_cache,
    search_key,
)


def test_address_round_trip(cache):
    payload = {"job_id": 3, "latitude": 21.0285, "longitude": 105.8542, "address": "Hà Nội"}

    cache.set_address(3, payload)

    assert cache.get_address(3) == payload
    assert cache.get_address(4) is None


def test_values_are_stored_as_json(cache):
    cache.set_address(3, {"address": "Hoàn Kiếm"})

    raw = cache.backend.get(address_key(3))

    assert isinstance(raw, str)
    assert "Hoàn Kiếm" in raw


def test_invalidate_address(cache):
    cache.set_address(3, {"job_id": 3})
    cache.invalidate_address(3)
    assert cache.get_address(3) is None


def test_search_key_is_exact():
    assert search_key(21.03, 105.85, 5) == "jobs_nearby:21.03:105.85:5.0"
    assert search_key(21.03, 105.85, 5) == search_key(21.03, 105.85, 5.0)
    assert search_key(21.03, 105.85, 5) != search_key(21.031, 105.85, 5)


def test_entries_use_their_own_ttl():
    now = [1000.0]
    backend = MemoryCacheBackend(timer=lambda: now[0])
    cache = ResultCache(backend, geocode_ttl=3600, search_ttl=600)

    cache.set_address(1, {"job_id": 1})
    cache.set_search(21.03, 105.85, 5, [{"job_id": 1}])

    now[0] += 601
    assert cache.get_search(21.03, 105.85, 5) is None
    assert cache.get_address(1) == {"job_id": 1}

    now[0] += 3000
    assert cache.get_address(1) is None


def test_corrupt_entry_is_a_miss_and_dropped(cache):
    cache.backend.set(address_key(5), "{not json", 60)

    assert cache.get_address(5) is None
    assert cache.backend.get(address_key(5)) is None


def test_broken_backend_never_raises():
    cache = ResultCache(BrokenCacheBackend())

    cache.set_address(1, {"job_id": 1})
    cache.set_search(21.03, 105.85, 5, [])
    cache.invalidate_address(1)
    cache.invalidate_search(21.03, 105.85, 5)

    assert cache.get_address(1) is None
    assert cache.get_search(21.03, 105.85, 5) is None


def test_null_backend_always_misses():
    cache = ResultCache(NullCacheBackend())
    cache.set_address(1, {"job_id": 1})
    assert cache.get_address(1) is None


def test_build_cache_respects_enabled_flag():
    assert isinstance(build_cache(True, 100, 3600, 600).backend, MemoryCacheBackend)
    assert isinstance(build_cache(False, 100, 3600, 600).backend, NullCacheBackend)


def test_address_entry_of_wrong_shape_is_dropped(cache):
    cache.backend.set(address_key(7), "[1, 2]", 60)

    assert cache.get_address(7) is None
    assert cache.backend.get(address_key(7)) is None


def test_search_entry_of_wrong_shape_is_dropped(cache):
    cache.backend.set(search_key(21.03, 105.85, 5), '{"jobs": []}', 60)

    assert cache.get_search(21.03, 105.85, 5) is None
    assert cache.backend.get(search_key(21.03, 105.85, 5)) is None
