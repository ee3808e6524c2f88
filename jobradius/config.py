"""
Configuration management for JobRadius.

Handles loading and validating configuration from YAML files.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


# Cities and districts recognised by the city-only fallback, checked in order
DEFAULT_KNOWN_CITIES = [
    "Hà Nội",
    "Hồ Chí Minh",
    "Đà Nẵng",
    "Hải Phòng",
    "Cần Thơ",
    "Hà Đông",
    "Long Biên",
    "Hoàn Kiếm",
]


@dataclass
class GeocoderConfig:
    """Configuration for the Nominatim geocoding provider."""
    domain: str = "nominatim.openstreetmap.org"
    scheme: str = "https"
    user_agent: str = "jobradius/1.0"
    timeout: float = 5.0  # seconds per outbound call
    country_codes: str = "vn"  # Restrict results to the platform's job market
    retry_attempts: int = 1  # Extra attempts when the provider is unavailable
    retry_delay: float = 1.0  # Seconds between retries
    min_delay_seconds: float = 1.0  # Nominatim allows 1 request per second


@dataclass
class ResolverConfig:
    """Address fallback strategy configuration."""
    default_region: str = "Hà Nội"
    country: str = "Việt Nam"
    known_cities: list[str] = field(default_factory=lambda: list(DEFAULT_KNOWN_CITIES))
    # Hanoi city centre, used when every tier fails
    fallback_latitude: float = 21.0285
    fallback_longitude: float = 105.8542
    fallback_display_name: str = "Hà Nội, Việt Nam (default)"


@dataclass
class SearchConfig:
    """Proximity search parameters."""
    default_radius_km: float = 5.0
    max_radius_km: float = 100.0


@dataclass
class CacheConfig:
    """Result cache configuration."""
    enabled: bool = True
    maxsize: int = 10_000
    geocode_ttl: int = 3600  # 1 hour
    search_ttl: int = 600  # 10 minutes


@dataclass
class DatabaseConfig:
    """Database configuration."""
    db_path: str = "jobs.db"
    timeout: float = 5.0  # seconds to wait on a locked database


@dataclass
class Config:
    """Main configuration container."""
    geocoder: GeocoderConfig = field(default_factory=GeocoderConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    def validate(self) -> list[str]:
        """
        Validate the configuration and return a list of errors.

        Returns:
            List of validation error messages. Empty if valid.
        """
        errors = []

        if not self.geocoder.user_agent:
            errors.append("geocoder.user_agent must be specified (Nominatim usage policy)")

        if self.geocoder.timeout <= 0:
            errors.append(f"geocoder.timeout must be positive, got {self.geocoder.timeout}")

        if self.geocoder.retry_attempts < 0:
            errors.append(
                f"geocoder.retry_attempts must be >= 0, got {self.geocoder.retry_attempts}"
            )

        if self.geocoder.retry_delay < 0 or self.geocoder.min_delay_seconds < 0:
            errors.append("geocoder.retry_delay and geocoder.min_delay_seconds must be >= 0")

        if not -90 <= self.resolver.fallback_latitude <= 90:
            errors.append(
                "resolver.fallback_latitude must be between -90 and 90, "
                f"got {self.resolver.fallback_latitude}"
            )

        if not -180 <= self.resolver.fallback_longitude <= 180:
            errors.append(
                "resolver.fallback_longitude must be between -180 and 180, "
                f"got {self.resolver.fallback_longitude}"
            )

        if not self.resolver.country:
            errors.append("resolver.country must be specified")

        if not 0 < self.search.max_radius_km <= 100:
            errors.append(
                f"search.max_radius_km must be in (0, 100], got {self.search.max_radius_km}"
            )

        if not 0 < self.search.default_radius_km <= self.search.max_radius_km:
            errors.append(
                "search.default_radius_km must be in (0, max_radius_km], "
                f"got {self.search.default_radius_km}"
            )

        if self.cache.geocode_ttl <= 0 or self.cache.search_ttl <= 0:
            errors.append("cache TTLs must be positive")

        if self.cache.maxsize <= 0:
            errors.append(f"cache.maxsize must be positive, got {self.cache.maxsize}")

        return errors


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.
                    Defaults to 'config.yaml' in the current directory.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If the configuration file doesn't exist.
        ValueError: If the configuration is invalid.
    """
    if config_path is None:
        config_path = os.environ.get("JOBRADIUS_CONFIG", "config.yaml")

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}. "
            "Please create a config.yaml file or set JOBRADIUS_CONFIG environment variable."
        )

    with open(path, "r", encoding="utf-8") as f:
        raw_config = yaml.safe_load(f) or {}

    config = Config()

    if "geocoder" in raw_config:
        geo_data = raw_config["geocoder"]
        config.geocoder = GeocoderConfig(
            domain=geo_data.get("domain", config.geocoder.domain),
            scheme=geo_data.get("scheme", config.geocoder.scheme),
            user_agent=geo_data.get("user_agent", config.geocoder.user_agent),
            timeout=geo_data.get("timeout", config.geocoder.timeout),
            country_codes=geo_data.get("country_codes", config.geocoder.country_codes),
            retry_attempts=geo_data.get("retry_attempts", config.geocoder.retry_attempts),
            retry_delay=geo_data.get("retry_delay", config.geocoder.retry_delay),
            min_delay_seconds=geo_data.get("min_delay_seconds", config.geocoder.min_delay_seconds),
        )

    if "resolver" in raw_config:
        res_data = raw_config["resolver"]
        config.resolver = ResolverConfig(
            default_region=res_data.get("default_region", config.resolver.default_region),
            country=res_data.get("country", config.resolver.country),
            known_cities=res_data.get("known_cities", config.resolver.known_cities),
            fallback_latitude=res_data.get("fallback_latitude", config.resolver.fallback_latitude),
            fallback_longitude=res_data.get("fallback_longitude", config.resolver.fallback_longitude),
            fallback_display_name=res_data.get(
                "fallback_display_name", config.resolver.fallback_display_name
            ),
        )

    if "search" in raw_config:
        search_data = raw_config["search"]
        config.search = SearchConfig(
            default_radius_km=search_data.get("default_radius_km", config.search.default_radius_km),
            max_radius_km=search_data.get("max_radius_km", config.search.max_radius_km),
        )

    if "cache" in raw_config:
        cache_data = raw_config["cache"]
        config.cache = CacheConfig(
            enabled=cache_data.get("enabled", config.cache.enabled),
            maxsize=cache_data.get("maxsize", config.cache.maxsize),
            geocode_ttl=cache_data.get("geocode_ttl", config.cache.geocode_ttl),
            search_ttl=cache_data.get("search_ttl", config.cache.search_ttl),
        )

    if "database" in raw_config:
        db_data = raw_config["database"]
        config.database = DatabaseConfig(
            db_path=db_data.get("db_path", config.database.db_path),
            timeout=db_data.get("timeout", config.database.timeout),
        )

    errors = config.validate()
    if errors:
        raise ValueError(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )

    return config


def generate_example_config(output_path: str = "config.example.yaml") -> None:
    """
    Generate an example configuration file with all available options.

    Args:
        output_path: Path where the example config will be written.
    """
    example_config = """# JobRadius Configuration
# Copy this file to config.yaml and customize for your needs.

# Geocoding provider (OpenStreetMap Nominatim via geopy)
geocoder:
  domain: "nominatim.openstreetmap.org"
  scheme: "https"
  user_agent: "jobradius/1.0"  # Required by the Nominatim usage policy
  timeout: 5  # seconds
  country_codes: "vn"
  retry_attempts: 1  # Retries per tier when the provider is unavailable
  retry_delay: 1.0
  min_delay_seconds: 1.0  # Nominatim usage policy: at most 1 request per second

# Address fallback strategy
resolver:
  default_region: "Hà Nội"
  country: "Việt Nam"
  known_cities:
    - "Hà Nội"
    - "Hồ Chí Minh"
    - "Đà Nẵng"
    - "Hải Phòng"
    - "Cần Thơ"
    - "Hà Đông"
    - "Long Biên"
    - "Hoàn Kiếm"
  # Used when every strategy fails
  fallback_latitude: 21.0285
  fallback_longitude: 105.8542
  fallback_display_name: "Hà Nội, Việt Nam (default)"

# Nearby search
search:
  default_radius_km: 5
  max_radius_km: 100

# Result cache
cache:
  enabled: true
  maxsize: 10000
  geocode_ttl: 3600  # seconds
  search_ttl: 600

# Database Settings
database:
  db_path: "jobs.db"
  timeout: 5.0
"""

    with open(output_path, "w", encoding="utf-8") as f:
        f.write(example_config)

    print(f"Example configuration written to: {output_path}")
