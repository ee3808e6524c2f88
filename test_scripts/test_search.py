"""
Tests for query validation and the proximity search engine.
"""

import math

import pytest

from conftest import BrokenCacheBackend
from jobradius.cache import ResultCache, search_key
from jobradius.database import format_coordinate
from jobradius.distance import EARTH_RADIUS_KM, distance_km
from jobradius.errors import StoreUnavailable, ValidationError
from jobradius.search import ProximitySearchEngine, ResolvedJob, SearchQuery, UserSummary

ORIGIN = (21.03, 105.85)


def north_of(origin, km):
    """Point ``km`` due north of ``origin`` (exact along a meridian)."""
    return origin[0] + math.degrees(km / EARTH_RADIUS_KM), origin[1]


def add_job(db, job_id, point, title=None, employer_id=1):
    db.upsert_job(job_id, title or f"Job {job_id}", f"Address of job {job_id}", employer_id=employer_id)
    db.upsert_location(job_id, employer_id, f"Address of job {job_id}", point[0], point[1])


# ---- SearchQuery validation ------------------------------------------------

def test_query_defaults_radius_to_five_km():
    query = SearchQuery.create(21.03, 105.85)
    assert query.radius_km == 5.0


def test_query_accepts_numeric_strings():
    query = SearchQuery.create("21.03", " 105.85 ", "10")
    assert query == SearchQuery(21.03, 105.85, 10.0)


@pytest.mark.parametrize("radius", [0, -1, 150, 100.01])
def test_query_rejects_out_of_range_radius(radius):
    with pytest.raises(ValidationError):
        SearchQuery.create(21.03, 105.85, radius)


def test_query_accepts_maximum_radius():
    assert SearchQuery.create(21.03, 105.85, 100).radius_km == 100


@pytest.mark.parametrize("latitude, longitude", [
    (None, 105.85),
    (21.03, None),
    ("abc", 105.85),
    (float("nan"), 105.85),
    (21.03, float("inf")),
    (True, 105.85),
    (90.5, 105.85),
    (-91, 105.85),
    (21.03, 180.5),
    (21.03, -181),
])
def test_query_rejects_bad_coordinates(latitude, longitude):
    with pytest.raises(ValidationError):
        SearchQuery.create(latitude, longitude, 5)


def test_query_accepts_zero_coordinates():
    query = SearchQuery.create(0, 0, 5)
    assert (query.latitude, query.longitude) == (0.0, 0.0)


# ---- Search ------------------------------------------------------------------------

def test_example_three_jobs(search_engine, db, employer):
    add_job(db, 1, north_of(ORIGIN, 1.2))
    add_job(db, 2, north_of(ORIGIN, 4.9))
    add_job(db, 3, north_of(ORIGIN, 7.0))

    results = search_engine.search(SearchQuery(21.03, 105.85, 5))

    assert [job.job_id for job in results] == [1, 2]
    assert [job.distance_km for job in results] == [1.2, 4.9]


def test_results_are_enriched_with_job_and_employer(search_engine, db, employer):
    db.upsert_job(
        1, "Backend Developer", "12 Main St, District 1, Hanoi",
        employer_id=employer, salary="20-30M VND", job_type="full-time",
    )
    db.upsert_location(1, employer, "12 Main St, District 1, Hanoi", *north_of(ORIGIN, 1.0))

    [job] = search_engine.search(SearchQuery(21.03, 105.85, 5))

    assert job.title == "Backend Developer"
    assert job.salary == "20-30M VND"
    assert job.job_type == "full-time"
    assert job.location == "12 Main St, District 1, Hanoi"
    assert job.employer.company_name == "Acme Việt Nam"
    assert job.employer.industry == "Software"


def test_employer_account_is_nested(search_engine, db, cache):
    db.upsert_user(5, email="hr@acme.vn", username="acme", avatar="avatar.png")
    db.upsert_employer(1, "Acme Việt Nam", industry="Software", user_id=5)
    db.upsert_employer(2, "No Account Ltd")
    add_job(db, 1, north_of(ORIGIN, 1.0), employer_id=1)
    add_job(db, 2, north_of(ORIGIN, 2.0), employer_id=2)
    query = SearchQuery(21.03, 105.85, 5)

    first, second = search_engine.search(query)

    assert first.employer.user == UserSummary(
        user_id=5, email="hr@acme.vn", username="acme", avatar="avatar.png",
    )
    assert second.employer.user is None
    # Rebuilt from the cache with the same nesting
    assert search_engine.search(query) == [first, second]


def test_rounded_distance_never_exceeds_radius(search_engine, db, employer):
    add_job(db, 1, north_of(ORIGIN, 4.9986))
    add_job(db, 2, north_of(ORIGIN, 4.9))

    results = search_engine.search(SearchQuery(21.03, 105.85, 4.999))

    assert [job.job_id for job in results] == [2]
    assert all(job.distance_km <= 4.999 for job in results)


def test_sorted_by_distance_then_job_id(search_engine, db, employer):
    add_job(db, 9, north_of(ORIGIN, 3.0))
    add_job(db, 4, north_of(ORIGIN, 0.5))
    add_job(db, 7, north_of(ORIGIN, 3.0))
    add_job(db, 2, north_of(ORIGIN, 3.0))

    results = search_engine.search(SearchQuery(21.03, 105.85, 5))

    assert [job.job_id for job in results] == [4, 2, 7, 9]
    distances = [job.distance_km for job in results]
    assert distances == sorted(distances)


def test_no_false_negatives_or_positives(search_engine, db, employer):
    points = {}
    job_id = 1
    for i in range(-4, 5):
        for j in range(-4, 5):
            point = (ORIGIN[0] + i * 0.013, ORIGIN[1] + j * 0.017)
            add_job(db, job_id, point)
            points[job_id] = point
            job_id += 1

    radius = 3.0
    results = search_engine.search(SearchQuery(ORIGIN[0], ORIGIN[1], radius))

    expected = {
        jid for jid, (lat, lon) in points.items()
        if distance_km(
            ORIGIN[0], ORIGIN[1],
            float(format_coordinate(lat)), float(format_coordinate(lon)),
        ) <= radius
    }
    assert {job.job_id for job in results} == expected
    assert 0 < len(expected) < len(points)
    assert all(job.distance_km <= radius for job in results)


def test_job_exactly_at_query_point(search_engine, db, employer):
    add_job(db, 1, ORIGIN)

    [job] = search_engine.search(SearchQuery(ORIGIN[0], ORIGIN[1], 1))

    assert job.distance_km == 0


def test_empty_store_returns_empty_list(search_engine):
    assert search_engine.search(SearchQuery(21.03, 105.85, 5)) == []


def test_nothing_in_range_returns_empty_list(search_engine, db, employer):
    add_job(db, 1, north_of(ORIGIN, 50))
    assert search_engine.search(SearchQuery(21.03, 105.85, 5)) == []


def test_locations_of_deleted_jobs_are_skipped(search_engine, db, employer):
    add_job(db, 1, north_of(ORIGIN, 1))
    db.upsert_location(99, employer, "orphan", *north_of(ORIGIN, 1))

    results = search_engine.search(SearchQuery(21.03, 105.85, 5))

    assert [job.job_id for job in results] == [1]


# ---- Caching -----------------------------------------------------------------------

def test_cache_hit_matches_cache_miss(search_engine, db, cache, employer):
    add_job(db, 1, north_of(ORIGIN, 1.2))
    add_job(db, 2, north_of(ORIGIN, 4.9))
    query = SearchQuery(21.03, 105.85, 5)

    miss = search_engine.search(query)
    assert cache.backend.get(search_key(21.03, 105.85, 5)) is not None
    hit = search_engine.search(query)

    assert hit == miss
    assert all(isinstance(job, ResolvedJob) for job in hit)


def test_cached_results_are_served_until_invalidated(search_engine, db, cache, employer):
    add_job(db, 1, north_of(ORIGIN, 1.2))
    query = SearchQuery(21.03, 105.85, 5)
    search_engine.search(query)

    # A new job inside the radius is not visible while the entry lives
    add_job(db, 2, north_of(ORIGIN, 2.0))
    assert [job.job_id for job in search_engine.search(query)] == [1]

    cache.invalidate_search(21.03, 105.85, 5)
    assert [job.job_id for job in search_engine.search(query)] == [1, 2]


def test_empty_results_are_not_cached(search_engine, cache):
    search_engine.search(SearchQuery(21.03, 105.85, 5))
    assert cache.backend.get(search_key(21.03, 105.85, 5)) is None


def test_cache_keys_use_exact_query(search_engine, db, cache, employer):
    add_job(db, 1, north_of(ORIGIN, 1.2))
    search_engine.search(SearchQuery(21.03, 105.85, 5))

    assert cache.get_search(21.03, 105.85, 5) is not None
    assert cache.get_search(21.0301, 105.85, 5) is None


def test_malformed_cache_entry_is_recomputed(search_engine, db, cache, employer):
    add_job(db, 1, north_of(ORIGIN, 1.2))
    cache.set_search(21.03, 105.85, 5, [{"unexpected": "shape"}])

    results = search_engine.search(SearchQuery(21.03, 105.85, 5))

    assert [job.job_id for job in results] == [1]


@pytest.mark.parametrize("raw", ['{"jobs": []}', "[1, 2]", '[{"employer": "x"}]', '[["abc"]]'])
def test_cache_entry_of_wrong_shape_is_recomputed(search_engine, db, cache, employer, raw):
    add_job(db, 1, north_of(ORIGIN, 1.2))
    cache.backend.set(search_key(21.03, 105.85, 5), raw, 600)

    results = search_engine.search(SearchQuery(21.03, 105.85, 5))

    assert [job.job_id for job in results] == [1]


def test_cache_outage_falls_back_to_store(db, config, employer):
    engine = ProximitySearchEngine(db, config.search, cache=ResultCache(BrokenCacheBackend()))
    add_job(db, 1, north_of(ORIGIN, 1.2))

    results = engine.search(SearchQuery(21.03, 105.85, 5))

    assert [job.job_id for job in results] == [1]


def test_store_outage_is_surfaced(search_engine, db, tmp_path):
    db.db_path = tmp_path / "missing-dir" / "jobs.db"

    with pytest.raises(StoreUnavailable):
        search_engine.search(SearchQuery(21.03, 105.85, 5))


def test_find_nearby_validates(search_engine):
    with pytest.raises(ValidationError):
        search_engine.find_nearby(21.03, 105.85, 0)
