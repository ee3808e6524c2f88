"""
Address resolver for JobRadius.

Turns a job's free-text address into coordinates by trying progressively
broader queries against the geocoding provider:

    1. the full address
    2. the last two address segments plus the default region
    3. a known city (or the last segment) plus the country
    4. a fixed fallback coordinate

Tiers 1-3 are plain ``address -> query`` functions so each heuristic can be
tested on its own. Resolution never fails on unresolvable text; the worst
case is the fallback coordinate with ``used_default`` set.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Optional

from .cache import ResultCache
from .config import GeocoderConfig, ResolverConfig
from .database import Database, JobLocation
from .errors import JobNotFoundError, ValidationError
from .geocoder import GeocodeOutcome, GeocodeStatus, NominatimProvider

logger = logging.getLogger(__name__)

DEFAULT_TIER = 4


def split_segments(address: str) -> list[str]:
    """Split an address on commas, dropping empty segments."""
    return [part.strip() for part in (address or "").split(",") if part.strip()]


def full_address(address: str) -> str:
    """Tier 1: the address as written."""
    return ", ".join(split_segments(address))


def broadened_address(address: str, default_region: str) -> str:
    """
    Tier 2: keep the last two segments and append the default region.

    "12 Main St, District 1, Hoàn Kiếm" -> "District 1, Hoàn Kiếm, Hà Nội"
    """
    parts = split_segments(address)[-2:]
    return ", ".join(parts + [default_region])


def city_only(address: str, known_cities: list[str], country: str, default_region: str) -> str:
    """
    Tier 3: a known city or district name plus the country.

    Segments are scanned left to right; the first one containing a known
    name wins. Without a match the last segment is used instead.
    """
    parts = split_segments(address)

    for part in parts:
        for city in known_cities:
            if city in part:
                return f"{city}, {country}"

    last = parts[-1] if parts else default_region
    return f"{last}, {country}"


@dataclass
class TierAttempt:
    """One query sent to the provider while resolving an address."""
    tier: int
    query: str
    status: str
    error: Optional[str] = None


@dataclass
class ResolvedCoordinate:
    """Final coordinate for an address."""
    latitude: float
    longitude: float
    address: str
    display_name: Optional[str] = None
    used_default: bool = False
    tier: int = 1
    query: Optional[str] = None
    attempts: list[TierAttempt] = field(default_factory=list)

    def to_payload(self, job_id: int) -> dict:
        """The cacheable, caller-facing view (no per-attempt detail)."""
        return {
            "job_id": job_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "display_name": self.display_name,
            "address": self.address,
            "used_default": self.used_default,
        }

    @classmethod
    def from_location(cls, location: JobLocation) -> "ResolvedCoordinate":
        """Rebuild a coordinate from a stored location."""
        return cls(
            latitude=location.latitude,
            longitude=location.longitude,
            address=location.raw_address,
            display_name=location.display_name,
            used_default=location.used_default,
            tier=DEFAULT_TIER if location.used_default else 1,
        )


class AddressResolver:
    """
    Tiered geocoding with a guaranteed result.

    Provider outages are retried a configured number of times per tier
    before the resolver moves on to the next, broader query.
    """

    def __init__(
        self,
        db: Database,
        provider: NominatimProvider,
        config: ResolverConfig,
        geocoder_config: GeocoderConfig,
        cache: Optional[ResultCache] = None,
    ):
        """
        Initialize the resolver.

        Args:
            db: Location store.
            provider: Geocoding provider adapter.
            config: Fallback strategy configuration.
            geocoder_config: Provider retry settings.
            cache: Optional result cache refreshed after each resolution.
        """
        self.db = db
        self.provider = provider
        self.config = config
        self.retry_attempts = geocoder_config.retry_attempts
        self.retry_delay = geocoder_config.retry_delay
        self.cache = cache

        self.strategies: list[tuple[int, str, Callable[[str], str]]] = [
            (1, "full address", full_address),
            (2, "broadened address", partial(broadened_address, default_region=config.default_region)),
            (3, "city only", partial(
                city_only,
                known_cities=config.known_cities,
                country=config.country,
                default_region=config.default_region,
            )),
        ]

    def fallback(self, address: str, attempts: list[TierAttempt]) -> ResolvedCoordinate:
        """The coordinate used when every tier fails."""
        return ResolvedCoordinate(
            latitude=self.config.fallback_latitude,
            longitude=self.config.fallback_longitude,
            address=address,
            display_name=self.config.fallback_display_name,
            used_default=True,
            tier=DEFAULT_TIER,
            query=None,
            attempts=attempts,
        )

    async def _lookup_with_retry(self, query: str) -> GeocodeOutcome:
        """Query the provider, retrying while it reports itself unavailable."""
        outcome = None
        for attempt in range(self.retry_attempts + 1):
            if attempt:
                logger.info(
                    f"Retrying '{query}' after provider error "
                    f"(attempt {attempt + 1}/{self.retry_attempts + 1})"
                )
                await asyncio.sleep(self.retry_delay)

            # geopy is blocking; run it off the event loop
            outcome = await asyncio.to_thread(self.provider.lookup, query)
            if outcome.status is not GeocodeStatus.UNAVAILABLE:
                break
        return outcome

    async def resolve_address(self, address: str) -> ResolvedCoordinate:
        """
        Resolve free text to a coordinate.

        Args:
            address: Free-text address.

        Returns:
            ResolvedCoordinate; ``used_default`` is True if no tier matched.
        """
        attempts: list[TierAttempt] = []
        tried: set[str] = set()

        for tier, name, transform in self.strategies:
            query = transform(address)
            if not query or query.casefold() in tried:
                logger.debug(f"Skipping tier {tier} ({name}): query '{query}' already tried")
                continue
            tried.add(query.casefold())

            logger.info(f"Geocoding tier {tier} ({name}): '{query}'")
            outcome = await self._lookup_with_retry(query)
            attempts.append(TierAttempt(
                tier=tier,
                query=query,
                status=outcome.status.value,
                error=outcome.error,
            ))

            if outcome.found:
                logger.info(
                    f"Resolved '{address}' at tier {tier} -> "
                    f"({outcome.latitude}, {outcome.longitude})"
                )
                return ResolvedCoordinate(
                    latitude=outcome.latitude,
                    longitude=outcome.longitude,
                    address=address,
                    display_name=outcome.display_name,
                    used_default=False,
                    tier=tier,
                    query=query,
                    attempts=attempts,
                )

        logger.warning(
            f"Geocoding failed for '{address}' after {len(attempts)} queries, "
            f"using default coordinates"
        )
        return self.fallback(address, attempts)

    async def resolve(self, job_id: int) -> ResolvedCoordinate:
        """
        Resolve a job's address and store the result.

        The location row is upserted first, then the cached address entry
        is refreshed. Calling this again for the same job overwrites the
        stored row.

        Args:
            job_id: The ID of the job.

        Returns:
            The stored ResolvedCoordinate.

        Raises:
            JobNotFoundError: If the job does not exist.
            ValidationError: If the job has no address.
            StoreUnavailable: If the location store cannot be reached.
        """
        job = await asyncio.to_thread(self.db.get_job, job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")

        address = (job.address_text or "").strip()
        if not address:
            raise ValidationError(f"No location found for job_id: {job_id}")

        coordinate = await self.resolve_address(address)

        location = await asyncio.to_thread(
            self.db.upsert_location,
            job_id=job.job_id,
            employer_id=job.employer_id,
            raw_address=address,
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
            display_name=coordinate.display_name,
            used_default=coordinate.used_default,
        )
        # Report the stored precision so cache and store agree
        coordinate.latitude = location.latitude
        coordinate.longitude = location.longitude
        logger.info(
            f"Stored location for job {job_id}"
            f"{' (default coordinates)' if coordinate.used_default else ''}"
        )

        if self.cache is not None:
            self.cache.set_address(job_id, coordinate.to_payload(job_id))

        return coordinate
