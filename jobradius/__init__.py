"""
JobRadius - job address geocoding and proximity search.

Resolves free-text job addresses to coordinates through a tiered
Nominatim fallback, stores one location per job, and answers
"jobs within R km of me" queries with a cache-aside layer in front.
"""

__version__ = "1.0.0"
__author__ = "JobRadius"
