"""
Address service for JobRadius.

The request/response surface of the location subsystem. Each method
corresponds to one endpoint of the job platform's address API:

    POST /address/{job_id}   -> geocode_address
    GET  /address/{job_id}   -> get_address
    POST /address/nearby     -> find_jobs_nearby
"""

import asyncio
import logging
from typing import Any, Optional

from .cache import ResultCache, build_cache
from .config import Config
from .database import Database
from .errors import JobNotFoundError, NotResolvedError, ValidationError
from .geocoder import NominatimProvider
from .resolver import AddressResolver, ResolvedCoordinate
from .search import ProximitySearchEngine

logger = logging.getLogger(__name__)


def _validate_job_id(job_id: Any) -> int:
    if job_id is None or isinstance(job_id, bool) or str(job_id).strip() == "":
        raise ValidationError("Job ID is required")
    try:
        job_id = int(str(job_id).strip())
    except ValueError:
        raise ValidationError(f"Invalid job ID: {job_id!r}")
    if job_id <= 0:
        raise ValidationError(f"Invalid job ID: {job_id}")
    return job_id


class AddressService:
    """Facade wiring the resolver, search engine, store and cache together."""

    def __init__(
        self,
        db: Database,
        resolver: AddressResolver,
        search_engine: ProximitySearchEngine,
        cache: Optional[ResultCache] = None,
    ):
        self.db = db
        self.resolver = resolver
        self.search_engine = search_engine
        self.cache = cache

    @classmethod
    def from_config(cls, config: Config, provider: Optional[NominatimProvider] = None) -> "AddressService":
        """
        Build a service from configuration.

        Args:
            config: Application configuration.
            provider: Geocoding provider; a Nominatim one is built if omitted.
        """
        db = Database(config.database.db_path, timeout=config.database.timeout)
        cache = build_cache(
            enabled=config.cache.enabled,
            maxsize=config.cache.maxsize,
            geocode_ttl=config.cache.geocode_ttl,
            search_ttl=config.cache.search_ttl,
        )
        provider = provider or NominatimProvider(config.geocoder)
        resolver = AddressResolver(db, provider, config.resolver, config.geocoder, cache=cache)
        search_engine = ProximitySearchEngine(db, config.search, cache=cache)
        logger.info("Address service initialized")
        return cls(db, resolver, search_engine, cache=cache)

    def _cached_address(self, job_id: int) -> Optional[dict]:
        return self.cache.get_address(job_id) if self.cache is not None else None

    def _stored_address(self, job_id: int) -> Optional[dict]:
        """Read a stored location and put it back in the cache."""
        location = self.db.get_location(job_id)
        if location is None:
            return None
        payload = ResolvedCoordinate.from_location(location).to_payload(job_id)
        if self.cache is not None:
            self.cache.set_address(job_id, payload)
        return payload

    async def geocode_address(self, job_id: Any, force: bool = False) -> dict:
        """
        Resolve and store the address of a job (POST /address/{job_id}).

        Args:
            job_id: The ID of the job.
            force: Re-geocode even if the job already has a location.

        Returns:
            Address payload with a human-readable ``message``.

        Raises:
            ValidationError: Bad job ID or the job has no address.
            JobNotFoundError: The job does not exist.
            StoreUnavailable: The location store cannot be reached.
        """
        job_id = _validate_job_id(job_id)

        if not force:
            payload = self._cached_address(job_id)
            if payload is not None:
                logger.info(f"Address for job {job_id} served from cache")
                return {**payload, "message": "Address already geocoded"}

            if await asyncio.to_thread(self.db.is_resolved, job_id):
                logger.info(f"Job {job_id} already geocoded, retrieving from database")
                payload = await asyncio.to_thread(self._stored_address, job_id)
                if payload is not None:
                    return {**payload, "message": "Address already geocoded"}

        coordinate = await self.resolver.resolve(job_id)
        payload = coordinate.to_payload(job_id)

        if coordinate.used_default:
            message = "Used default coordinates (geocoding failed)"
        else:
            message = "Address geocoded successfully"

        return {**payload, "message": message}

    def get_address(self, job_id: Any) -> dict:
        """
        Return the stored address of a job (GET /address/{job_id}).

        Raises:
            ValidationError: Bad job ID.
            NotResolvedError: The job has never been geocoded.
            StoreUnavailable: The location store cannot be reached.
        """
        job_id = _validate_job_id(job_id)

        payload = self._cached_address(job_id)
        if payload is None:
            payload = self._stored_address(job_id)
        if payload is None:
            raise NotResolvedError(f"Address for job {job_id} has not been geocoded")

        return {**payload, "message": "Address retrieved"}

    def find_jobs_nearby(self, latitude: Any, longitude: Any, radius_km: Any = None) -> dict:
        """
        Find jobs around a point (POST /address/nearby).

        Args:
            latitude: Caller's latitude.
            longitude: Caller's longitude.
            radius_km: Search radius; the configured default (5 km) if omitted.

        Returns:
            ``{jobs, count, radius, userLocation}``.

        Raises:
            ValidationError: Bad coordinates or radius.
            StoreUnavailable: The location store cannot be reached.
        """
        query = self.search_engine.build_query(latitude, longitude, radius_km)
        jobs = self.search_engine.search(query)
        return {
            "jobs": [job.to_dict() for job in jobs],
            "count": len(jobs),
            "radius": query.radius_km,
            "userLocation": {"latitude": query.latitude, "longitude": query.longitude},
        }

    async def resolve_pending(self, include_defaults: bool = False) -> dict:
        """
        Geocode every job that has an address but no stored location.

        Jobs are processed one at a time, in job ID order.

        Args:
            include_defaults: Also retry jobs stored with the fallback coordinate.

        Returns:
            Dictionary with counts of resolved, defaulted and failed jobs.
        """
        job_ids = await asyncio.to_thread(
            self.db.get_unresolved_job_ids, include_defaults=include_defaults
        )
        logger.info(f"Found {len(job_ids)} jobs to geocode")

        stats = {"total": len(job_ids), "resolved": 0, "defaulted": 0, "errors": []}
        for job_id in job_ids:
            try:
                coordinate = await self.resolver.resolve(job_id)
            except (ValidationError, JobNotFoundError) as e:
                logger.warning(f"Skipping job {job_id}: {e}")
                stats["errors"].append(f"Job {job_id}: {e}")
                continue

            if coordinate.used_default:
                stats["defaulted"] += 1
            else:
                stats["resolved"] += 1

        logger.info(
            f"Geocoded {stats['resolved']}/{stats['total']} jobs "
            f"({stats['defaulted']} on default coordinates, {len(stats['errors'])} skipped)"
        )
        return stats
