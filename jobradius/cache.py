"""
Result cache for JobRadius.

Cache-aside layer in front of single-job address lookups and nearby-job
search results. The cache is advisory only: every backend failure is
logged and treated as a miss, never surfaced to the caller.
"""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

from cachetools import TLRUCache

logger = logging.getLogger(__name__)

ADDRESS_PREFIX = "job_address:"
NEARBY_PREFIX = "jobs_nearby:"


class CacheBackend(ABC):
    """Key/value store holding JSON strings with a per-key TTL."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None."""

    @abstractmethod
    def set(self, key: str, value: str, ttl: int) -> None:
        """Store a value for ``ttl`` seconds."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key if present."""


class MemoryCacheBackend(CacheBackend):
    """In-process backend on a cachetools TLRU cache (per-item expiry)."""

    def __init__(self, maxsize: int = 10_000, timer=time.monotonic):
        # Values are (payload, ttl); expiry is computed per item at insert time
        self._cache = TLRUCache(
            maxsize=maxsize,
            ttu=lambda _key, value, now: now + value[1],
            timer=timer,
        )
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._cache.get(key)
        return entry[0] if entry else None

    def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            self._cache[key] = (value, ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


class NullCacheBackend(CacheBackend):
    """Backend used when caching is disabled; always misses."""

    def get(self, key: str) -> Optional[str]:
        return None

    def set(self, key: str, value: str, ttl: int) -> None:
        pass

    def delete(self, key: str) -> None:
        pass


def search_key(latitude: float, longitude: float, radius_km: float) -> str:
    """
    Cache key for a nearby search.

    Uses the exact submitted values; nearby-but-different queries get
    separate entries.
    """
    return f"{NEARBY_PREFIX}{float(latitude)!r}:{float(longitude)!r}:{float(radius_km)!r}"


def address_key(job_id: int) -> str:
    return f"{ADDRESS_PREFIX}{job_id}"


class ResultCache:
    """
    Cache-aside front for address and search results.

    Values are serialised to JSON the way an external key/value service
    would store them. No method raises: failures are logged and the
    caller falls through to the location store.
    """

    def __init__(
        self,
        backend: CacheBackend,
        geocode_ttl: int = 3600,
        search_ttl: int = 600,
    ):
        """
        Initialize the cache.

        Args:
            backend: Storage backend.
            geocode_ttl: Seconds to keep a resolved address.
            search_ttl: Seconds to keep a nearby-search result set.
        """
        self.backend = backend
        self.geocode_ttl = geocode_ttl
        self.search_ttl = search_ttl

    def _get(self, key: str, expected: type) -> Optional[Any]:
        try:
            raw = self.backend.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for '{key}', treating as miss: {e}")
            return None

        if raw is None:
            return None

        try:
            value = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Dropping corrupt cache entry '{key}': {e}")
            self._delete(key)
            return None

        if not isinstance(value, expected):
            logger.warning(
                f"Dropping cache entry '{key}': expected {expected.__name__}, "
                f"got {type(value).__name__}"
            )
            self._delete(key)
            return None

        return value

    def _set(self, key: str, value: Any, ttl: int) -> None:
        try:
            self.backend.set(key, json.dumps(value, ensure_ascii=False), ttl)
        except Exception as e:
            logger.warning(f"Cache write failed for '{key}': {e}")

    def _delete(self, key: str) -> None:
        try:
            self.backend.delete(key)
        except Exception as e:
            logger.warning(f"Cache delete failed for '{key}': {e}")

    # ---- Single-job addresses --------------------------------------------

    def get_address(self, job_id: int) -> Optional[dict]:
        """Cached address payload for a job, or None."""
        value = self._get(address_key(job_id), dict)
        if value is not None:
            logger.debug(f"Address for job {job_id} found in cache")
        return value

    def set_address(self, job_id: int, payload: dict) -> None:
        """Store (or refresh) the address payload for a job."""
        self._set(address_key(job_id), payload, self.geocode_ttl)

    def invalidate_address(self, job_id: int) -> None:
        self._delete(address_key(job_id))

    # ---- Nearby searches ------------------------------------------------

    def get_search(self, latitude: float, longitude: float, radius_km: float) -> Optional[list]:
        """Cached result set (list of dicts) for a query, or None."""
        value = self._get(search_key(latitude, longitude, radius_km), list)
        if value is not None:
            logger.debug(f"Nearby jobs for ({latitude}, {longitude}, {radius_km}km) found in cache")
        return value

    def set_search(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        jobs: list[dict],
    ) -> None:
        """Store a search result set."""
        self._set(search_key(latitude, longitude, radius_km), jobs, self.search_ttl)

    def invalidate_search(self, latitude: float, longitude: float, radius_km: float) -> None:
        self._delete(search_key(latitude, longitude, radius_km))


def build_cache(enabled: bool, maxsize: int, geocode_ttl: int, search_ttl: int) -> ResultCache:
    """Create the ResultCache described by the cache configuration."""
    backend: CacheBackend = MemoryCacheBackend(maxsize=maxsize) if enabled else NullCacheBackend()
    logger.debug(
        f"Result cache: backend={type(backend).__name__}, "
        f"geocode_ttl={geocode_ttl}s, search_ttl={search_ttl}s"
    )
    return ResultCache(backend, geocode_ttl=geocode_ttl, search_ttl=search_ttl)
