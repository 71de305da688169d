"""
Memory layer: generated-day cache and trip store.
"""

from .cache import CacheEntry, DayCache, day_cache
from .trip_store import TripRecord, TripStore, generate_trip_id, trip_store

__all__ = [
    "CacheEntry",
    "DayCache",
    "day_cache",
    "TripRecord",
    "TripStore",
    "generate_trip_id",
    "trip_store",
]
