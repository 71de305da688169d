"""Per-day itinerary cache shared across stream sessions."""

import threading
import time
from typing import Callable, Dict, Optional, Tuple

from pydantic import BaseModel

from ..schemas.trip import ItineraryDay
from ..utils.config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)


class CacheEntry(BaseModel):
    """A generated day stored for reuse by later sessions of the same trip."""
    trip_id: str
    day_index: int
    day: ItineraryDay
    created_at: float

    def age_seconds(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.created_at


class DayCache:
    """
    Thread-safe in-memory cache of generated days keyed by (trip id, day index).

    Entries older than the TTL are treated as missing and evicted on lookup.
    Only stream producers write to the cache.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.time):
        self.ttl_seconds = settings.cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, int], CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, trip_id: str, day_index: int) -> Optional[CacheEntry]:
        """Return a fresh entry, or None when missing or expired."""
        key = (trip_id, day_index)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.age_seconds(self._clock()) >= self.ttl_seconds:
                del self._entries[key]
                logger.debug("cache_entry_expired", trip_id=trip_id, day_index=day_index)
                return None
            return entry

    def put(self, trip_id: str, day_index: int, day: ItineraryDay) -> CacheEntry:
        entry = CacheEntry(trip_id=trip_id, day_index=day_index, day=day, created_at=self._clock())
        with self._lock:
            self._entries[(trip_id, day_index)] = entry
        return entry

    def fresh_days(self, trip_id: str, total_days: int) -> Dict[int, ItineraryDay]:
        """All fresh days of a trip, keyed by 0-based day index."""
        days = {}
        for index in range(total_days):
            entry = self.get(trip_id, index)
            if entry is not None:
                days[index] = entry.day
        return days

    def invalidate(self, trip_id: str) -> int:
        """Drop every entry of a trip. Returns the number of entries removed."""
        with self._lock:
            keys = [key for key in self._entries if key[0] == trip_id]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.info("cache_invalidated", trip_id=trip_id, entries=len(keys))
        return len(keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# Global cache instance
day_cache = DayCache()
