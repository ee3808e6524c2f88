"""
Proximity search for JobRadius.

Answers "which jobs are within R km of this point" from the stored job
locations: one bulk fetch, a vectorised haversine pass, a radius filter
and a deterministic sort, with full result sets cached per query.
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Optional

import numpy as np

from .cache import ResultCache
from .config import SearchConfig
from .database import Database, LocatedJob
from .distance import distances_km
from .errors import ValidationError

logger = logging.getLogger(__name__)


def _coerce_number(value: Any, name: str) -> float:
    """Convert a client-supplied number, rejecting anything non-finite."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{name} is required and must be a number")
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}: {value!r}")
    if not math.isfinite(number):
        raise ValidationError(f"Invalid {name}: {value!r}")
    return number


@dataclass(frozen=True)
class SearchQuery:
    """A validated nearby-jobs query."""
    latitude: float
    longitude: float
    radius_km: float

    @classmethod
    def create(
        cls,
        latitude: Any,
        longitude: Any,
        radius_km: Any = None,
        default_radius_km: float = 5.0,
        max_radius_km: float = 100.0,
    ) -> "SearchQuery":
        """
        Validate raw input and build a query.

        Raises:
            ValidationError: If a coordinate is missing, non-numeric or out
                of range, or the radius is not in (0, max_radius_km].
        """
        lat = _coerce_number(latitude, "latitude")
        lon = _coerce_number(longitude, "longitude")

        if not -90 <= lat <= 90:
            raise ValidationError(f"Latitude must be between -90 and 90, got {lat}")
        if not -180 <= lon <= 180:
            raise ValidationError(f"Longitude must be between -180 and 180, got {lon}")

        radius = default_radius_km if radius_km is None else _coerce_number(radius_km, "radius_km")
        if not 0 < radius <= max_radius_km:
            raise ValidationError(
                f"Radius must be greater than 0 and at most {max_radius_km:g} km, got {radius:g}"
            )

        return cls(latitude=lat, longitude=lon, radius_km=radius)


@dataclass
class UserSummary:
    user_id: int
    email: Optional[str]
    username: Optional[str]
    avatar: Optional[str]


@dataclass
class EmployerSummary:
    employer_id: Optional[int]
    company_name: Optional[str]
    company_logo: Optional[str]
    industry: Optional[str]
    user: Optional[UserSummary] = None


@dataclass
class ResolvedJob:
    """A job within the search radius, with its distance from the query point."""
    job_id: int
    title: str
    salary: Optional[str]
    job_type: Optional[str]
    requirements: Optional[str]
    created_at: Optional[str]
    location: str
    latitude: float
    longitude: float
    distance_km: float
    employer: EmployerSummary

    @classmethod
    def from_located(cls, job: LocatedJob, distance_km: float) -> "ResolvedJob":
        return cls(
            job_id=job.job_id,
            title=job.title,
            salary=job.salary,
            job_type=job.job_type,
            requirements=job.requirements,
            created_at=job.created_at,
            location=job.raw_address,
            latitude=job.latitude,
            longitude=job.longitude,
            distance_km=round(distance_km, 2),
            employer=EmployerSummary(
                employer_id=job.employer_id,
                company_name=job.company_name,
                company_logo=job.company_logo,
                industry=job.industry,
                user=UserSummary(
                    user_id=job.user_id,
                    email=job.user_email,
                    username=job.user_username,
                    avatar=job.user_avatar,
                ) if job.user_id is not None else None,
            ),
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ResolvedJob":
        data = dict(data)
        employer = dict(data["employer"])
        if employer.get("user") is not None:
            employer["user"] = UserSummary(**employer["user"])
        data["employer"] = EmployerSummary(**employer)
        return cls(**data)


class ProximitySearchEngine:
    """
    Radius search over resolved job locations.

    Results are sorted by distance, then job ID, so equal distances come
    back in a stable order. Search never writes to the location store.
    """

    def __init__(
        self,
        db: Database,
        config: SearchConfig,
        cache: Optional[ResultCache] = None,
    ):
        """
        Initialize the search engine.

        Args:
            db: Location store.
            config: Radius defaults and limits.
            cache: Optional result cache.
        """
        self.db = db
        self.config = config
        self.cache = cache

    def build_query(self, latitude: Any, longitude: Any, radius_km: Any = None) -> SearchQuery:
        """Validate raw input against the configured radius limits."""
        return SearchQuery.create(
            latitude,
            longitude,
            radius_km,
            default_radius_km=self.config.default_radius_km,
            max_radius_km=self.config.max_radius_km,
        )

    def _from_cache(self, query: SearchQuery) -> Optional[list[ResolvedJob]]:
        if self.cache is None:
            return None

        cached = self.cache.get_search(query.latitude, query.longitude, query.radius_km)
        if cached is None:
            return None

        try:
            return [ResolvedJob.from_dict(item) for item in cached]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed cached search result: {e}")
            self.cache.invalidate_search(query.latitude, query.longitude, query.radius_km)
            return None

    def search(self, query: SearchQuery) -> list[ResolvedJob]:
        """
        Find jobs within ``query.radius_km`` of the query point.

        Args:
            query: Validated query.

        Returns:
            Jobs ordered by ascending distance, ties by job ID. Empty if
            nothing is in range.

        Raises:
            StoreUnavailable: If the location store cannot be reached.
        """
        cached = self._from_cache(query)
        if cached is not None:
            return cached

        located = self.db.get_located_jobs()
        if not located:
            logger.debug("No resolved job locations to search")
            return []

        lats = np.fromiter((job.latitude for job in located), dtype=float, count=len(located))
        lons = np.fromiter((job.longitude for job in located), dtype=float, count=len(located))
        distances = distances_km(query.latitude, query.longitude, lats, lons)

        # The reported (rounded) distance must also be within the radius
        in_range = [
            ResolvedJob.from_located(job, float(distance))
            for job, distance in zip(located, distances)
            if distance <= query.radius_km and round(float(distance), 2) <= query.radius_km
        ]
        in_range.sort(key=lambda job: (job.distance_km, job.job_id))

        logger.info(
            f"Found {len(in_range)}/{len(located)} jobs within {query.radius_km:g}km "
            f"of ({query.latitude}, {query.longitude})"
        )

        # Empty results are never cached
        if in_range and self.cache is not None:
            self.cache.set_search(
                query.latitude,
                query.longitude,
                query.radius_km,
                [job.to_dict() for job in in_range],
            )

        return in_range

    def find_nearby(self, latitude: Any, longitude: Any, radius_km: Any = None) -> list[ResolvedJob]:
        """Validate raw input and run the search."""
        return self.search(self.build_query(latitude, longitude, radius_km))
