"""
Shared fixtures for the JobRadius tests.

Geocoding is faked: FakeProvider answers from a dict of query -> response
and records every query it receives.
"""

import os
import sys
import threading

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from jobradius.cache import CacheBackend, MemoryCacheBackend, ResultCache
from jobradius.config import Config
from jobradius.database import Database
from jobradius.errors import CacheUnavailable
from jobradius.geocoder import GeocodeOutcome, GeocodeStatus
from jobradius.resolver import AddressResolver
from jobradius.search import ProximitySearchEngine
from jobradius.service import AddressService

UNAVAILABLE = "unavailable"


class FakeProvider:
    """
    Stand-in for NominatimProvider.

    ``responses`` maps a query to either ``(lat, lon, display_name)``,
    ``UNAVAILABLE``, or a list of those consumed one call at a time (the
    last entry repeats). Unknown queries are NOT_FOUND.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []
        self._lock = threading.Lock()

    def lookup(self, query):
        with self._lock:
            self.calls.append(query)
            response = self.responses.get(query)
            if isinstance(response, list):
                response = response.pop(0) if len(response) > 1 else response[0]

        if response is None:
            return GeocodeOutcome.not_found(query)
        if response == UNAVAILABLE:
            return GeocodeOutcome.unavailable(query, "GeocoderTimedOut: Service timed out")

        latitude, longitude, display_name = response
        return GeocodeOutcome(
            status=GeocodeStatus.FOUND,
            query=query,
            latitude=latitude,
            longitude=longitude,
            display_name=display_name,
        )


class BrokenCacheBackend(CacheBackend):
    """Backend whose every operation fails, like an unreachable cache server."""

    def get(self, key):
        raise CacheUnavailable("connection refused")

    def set(self, key, value, ttl):
        raise CacheUnavailable("connection refused")

    def delete(self, key):
        raise CacheUnavailable("connection refused")


@pytest.fixture
def config(tmp_path):
    config = Config()
    config.database.db_path = str(tmp_path / "jobs.db")
    config.geocoder.retry_delay = 0
    config.geocoder.min_delay_seconds = 0
    return config


@pytest.fixture
def db(config):
    return Database(config.database.db_path, timeout=config.database.timeout)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def cache():
    return ResultCache(MemoryCacheBackend(), geocode_ttl=3600, search_ttl=600)


@pytest.fixture
def resolver(db, provider, config, cache):
    return AddressResolver(db, provider, config.resolver, config.geocoder, cache=cache)


@pytest.fixture
def search_engine(db, config, cache):
    return ProximitySearchEngine(db, config.search, cache=cache)


@pytest.fixture
def service(db, resolver, search_engine, cache):
    return AddressService(db, resolver, search_engine, cache=cache)


@pytest.fixture
def employer(db):
    db.upsert_employer(1, "Acme Việt Nam", company_logo="acme.png", industry="Software")
    return 1
