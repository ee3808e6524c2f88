"""
Great-circle distance for JobRadius.

Great-circle distance on a spherical Earth (R = 6371 km): geopy for single
pairs, a numpy haversine for one-to-many. Both return full precision;
callers round for display after filtering.
"""

import numpy as np
from geopy.distance import great_circle

EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in kilometres between two (lat, lon) points."""
    return great_circle((lat1, lon1), (lat2, lon2), radius=EARTH_RADIUS_KM).km


def distances_km(
    lat: float,
    lon: float,
    lats: np.ndarray,
    lons: np.ndarray,
) -> np.ndarray:
    """
    Vectorised haversine from one point to many.

    Args:
        lat: Origin latitude.
        lon: Origin longitude.
        lats: Array of target latitudes.
        lons: Array of target longitudes.

    Returns:
        Array of distances in kilometres, same shape as ``lats``.
    """
    lats = np.asarray(lats, dtype=float)
    lons = np.asarray(lons, dtype=float)

    dlat = np.radians(lats - lat)
    dlon = np.radians(lons - lon)
    a = (
        np.sin(dlat / 2) ** 2
        + np.cos(np.radians(lat)) * np.cos(np.radians(lats)) * np.sin(dlon / 2) ** 2
    )
    # Rounding can push a past 1.0 for antipodal points
    a = np.clip(a, 0.0, 1.0)
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return EARTH_RADIUS_KM * c
