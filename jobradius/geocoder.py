"""
Geocoding provider adapter for JobRadius.

Wraps a single Nominatim lookup (via geopy) and reports the outcome as a
tagged result so the resolver can tell "no such place" apart from
"provider is down right now".
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from geopy.exc import (
    GeocoderQueryError,
    GeocoderRateLimited,
    GeocoderServiceError,
    GeocoderTimedOut,
    GeocoderUnavailable,
    GeopyError,
)
from geopy.extra.rate_limiter import RateLimiter
from geopy.geocoders import Nominatim

from .config import GeocoderConfig

logger = logging.getLogger(__name__)


class GeocodeStatus(Enum):
    """Outcome of a single provider lookup."""
    FOUND = "found"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


@dataclass
class GeocodeOutcome:
    """Result of one provider call."""
    status: GeocodeStatus
    query: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    display_name: Optional[str] = None
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status is GeocodeStatus.FOUND

    @classmethod
    def not_found(cls, query: str, error: Optional[str] = None) -> "GeocodeOutcome":
        return cls(status=GeocodeStatus.NOT_FOUND, query=query, error=error)

    @classmethod
    def unavailable(cls, query: str, error: str) -> "GeocodeOutcome":
        return cls(status=GeocodeStatus.UNAVAILABLE, query=query, error=error)


class NominatimProvider:
    """
    Single-shot Nominatim lookup.

    Issues exactly one outbound request per call, restricted to the
    configured country codes, and keeps only the best match. Retrying
    is left to the caller.
    """

    def __init__(self, config: GeocoderConfig, geolocator: Optional[Nominatim] = None):
        """
        Initialize the provider.

        Args:
            config: Geocoder configuration.
            geolocator: Pre-built geocoder; one is created from config if omitted.
        """
        self.config = config
        self.geolocator = geolocator or Nominatim(
            user_agent=config.user_agent,
            timeout=config.timeout,
            domain=config.domain,
            scheme=config.scheme,
        )
        # Spaces out calls per the Nominatim usage policy; never retries
        self._geocode = RateLimiter(
            self.geolocator.geocode,
            min_delay_seconds=config.min_delay_seconds,
            max_retries=0,
            swallow_exceptions=False,
        )
        logger.debug(
            f"Nominatim provider initialized: {config.scheme}://{config.domain}, "
            f"timeout={config.timeout}s, country_codes={config.country_codes}"
        )

    def lookup(self, query: str) -> GeocodeOutcome:
        """
        Geocode a query string.

        Args:
            query: Free-text address or place name.

        Returns:
            GeocodeOutcome tagged FOUND, NOT_FOUND or UNAVAILABLE.
        """
        query = (query or "").strip()
        if not query:
            return GeocodeOutcome.not_found(query, "empty query")

        try:
            location = self._geocode(
                query,
                exactly_one=True,
                timeout=self.config.timeout,
                country_codes=self.config.country_codes or None,
                addressdetails=True,
            )
        except GeocoderQueryError as e:
            logger.warning(f"Geocoder rejected query '{query}': {e}")
            return GeocodeOutcome.not_found(query, str(e))
        except (GeocoderTimedOut, GeocoderUnavailable, GeocoderRateLimited) as e:
            logger.warning(f"Geocoder unavailable for '{query}': {type(e).__name__}: {e}")
            return GeocodeOutcome.unavailable(query, f"{type(e).__name__}: {e}")
        except GeocoderServiceError as e:
            logger.error(f"Geocoding service error for '{query}': {e}")
            return GeocodeOutcome.unavailable(query, f"{type(e).__name__}: {e}")
        except GeopyError as e:
            logger.error(f"Unexpected geocoding error for '{query}': {e}")
            return GeocodeOutcome.unavailable(query, f"{type(e).__name__}: {e}")

        if location is None:
            logger.debug(f"No geocoding results for '{query}'")
            return GeocodeOutcome.not_found(query)

        try:
            latitude = float(location.latitude)
            longitude = float(location.longitude)
            if not (math.isfinite(latitude) and math.isfinite(longitude)):
                raise ValueError("non-finite coordinates")
        except (TypeError, ValueError):
            logger.warning(f"Geocoder returned unusable coordinates for '{query}'")
            return GeocodeOutcome.not_found(query, "invalid coordinates in response")

        logger.debug(f"Geocoded '{query}' -> ({latitude}, {longitude})")
        return GeocodeOutcome(
            status=GeocodeStatus.FOUND,
            query=query,
            latitude=latitude,
            longitude=longitude,
            display_name=location.address,
        )
