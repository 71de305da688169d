"""In-memory trip store holding parameters and generated days per trip."""

import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ..schemas.trip import ItineraryDay, TripParameters
from ..utils.exceptions import TripNotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)

GenerationStatus = Literal["idle", "generating", "complete", "error"]


def generate_trip_id() -> str:
    """Generate unique trip ID"""
    return f"trip_{uuid.uuid4().hex[:8]}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TripRecord(BaseModel):
    """Stored trip: parameters, days generated so far and generation status."""
    trip_id: str
    params: TripParameters
    days: Dict[int, ItineraryDay] = Field(default_factory=dict, description="Keyed by 0-based day index")
    status: GenerationStatus = "idle"
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def ordered_days(self) -> List[ItineraryDay]:
        return [self.days[index] for index in sorted(self.days)]

    def contiguous_days(self) -> Dict[int, ItineraryDay]:
        """Days 0..n-1 without a gap, the part of a prior run that can be resumed."""
        prefix = {}
        index = 0
        while index in self.days:
            prefix[index] = self.days[index]
            index += 1
        return prefix

    def to_wire(self) -> dict:
        return {
            "tripId": self.trip_id,
            "status": self.status,
            "destination": self.params.destination,
            "startDate": self.params.start_date.isoformat(),
            "totalDays": self.params.day_count,
            "days": [day.to_wire() for day in self.ordered_days()],
            "error": self.error,
            "updatedAt": self.updated_at.isoformat(),
        }


class TripStore:
    """
    Thread-safe in-memory trip store.

    Records returned by ``get`` are copies; all writes go through the store.
    """

    def __init__(self):
        self._records: Dict[str, TripRecord] = {}
        self._lock = threading.Lock()

    def create(self, params: TripParameters, trip_id: Optional[str] = None) -> TripRecord:
        record = TripRecord(trip_id=trip_id or generate_trip_id(), params=params)
        with self._lock:
            self._records[record.trip_id] = record
        logger.info("trip_created", trip_id=record.trip_id, destination=params.destination, total_days=params.day_count)
        return record.model_copy(deep=True)

    def get(self, trip_id: str) -> TripRecord:
        """
        Raises:
            TripNotFoundError: If the trip id is unknown
        """
        with self._lock:
            record = self._records.get(trip_id)
            if record is None:
                raise TripNotFoundError(f"Trip {trip_id} not found", context={"trip_id": trip_id})
            return record.model_copy(deep=True)

    def save_day(self, trip_id: str, day_index: int, day: ItineraryDay) -> None:
        with self._lock:
            record = self._require(trip_id)
            record.days[day_index] = day
            record.updated_at = _now()

    def set_status(self, trip_id: str, status: GenerationStatus, error: Optional[str] = None) -> None:
        with self._lock:
            record = self._require(trip_id)
            record.status = status
            record.error = error
            record.updated_at = _now()
        logger.debug("trip_status_changed", trip_id=trip_id, status=status)

    def _require(self, trip_id: str) -> TripRecord:
        record = self._records.get(trip_id)
        if record is None:
            raise TripNotFoundError(f"Trip {trip_id} not found", context={"trip_id": trip_id})
        return record


# Global store instance
trip_store = TripStore()
