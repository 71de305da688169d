"""
Pydantic schemas for trip data structures.

Wire shapes use camelCase aliases; Python code uses snake_case field names.
"""
from datetime import date, timedelta
from typing import List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


ActivityType = Literal["activity", "meal", "transport", "lodging"]


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """JSON-ready dict with camelCase keys and unset optionals dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================================
# ITINERARY CONTENT
# ============================================================================

class Coordinates(CamelModel):
    """Geographic point of an activity"""
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class Activity(CamelModel):
    """Single scheduled item within a day. Immutable once attached to a day."""
    model_config = ConfigDict(frozen=True)

    time: str = Field(..., description="Start time, '14:30' or '2:30 PM'", examples=["09:00"])
    name: str = Field(..., description="Activity name", examples=["Senso-ji Temple"])
    description: str = Field(default="", description="Short description")
    type: ActivityType = Field(default="activity", description="Activity category")
    estimated_cost: float = Field(default=0.0, ge=0, description="Estimated cost for the group")
    duration: str = Field(default="1 hour", description="Duration, e.g. '2 hours' or '90 min'")
    location: str = Field(default="", description="Human readable location")
    coordinates: Optional[Coordinates] = Field(default=None, description="Location coordinates")
    transport_mode: Optional[str] = Field(default=None, description="Mode used to reach the next activity")


class LocalFood(CamelModel):
    """Food recommendation attached to a day"""
    model_config = ConfigDict(frozen=True)

    name: str
    cuisine: str = ""
    price_range: str = ""
    estimated_cost: float = Field(default=0.0, ge=0)
    must_try: str = ""
    address: Optional[str] = None


class ItineraryDay(CamelModel):
    """
    A single day of the plan.

    ``day`` is the 1-based display number; the stream addresses days by
    0-based ``dayIndex``. Days are only ever replaced wholesale.
    """
    day: int = Field(..., ge=1, description="1-based day number")
    date: str = Field(..., description="Date in YYYY-MM-DD format", examples=["2025-12-20"])
    title: str = Field(default="", description="Theme of the day")
    activities: List[Activity] = Field(default_factory=list)
    local_food: Optional[List[LocalFood]] = None

    @property
    def index(self) -> int:
        return self.day - 1

    def total_cost(self) -> float:
        cost = sum(a.estimated_cost for a in self.activities)
        cost += sum(f.estimated_cost for f in self.local_food or [])
        return cost

    def summary(self) -> str:
        """One-line summary used as prior context for later days."""
        names = ", ".join(a.name for a in self.activities)
        return f"Day {self.day}: {names}"


# ============================================================================
# TRIP PARAMETERS
# ============================================================================

class GroupProfile(CamelModel):
    """Who is travelling; drives the logistics buffer requirements."""
    has_toddler: bool = False
    has_elderly: bool = False
    has_mobility_issues: bool = False
    group_size: int = Field(default=2, ge=1)


class TripParameters(CamelModel):
    """Everything the generator and the Director need to know about a trip."""
    destination: str = Field(..., min_length=1, examples=["Tokyo, Japan"])
    start_date: date
    end_date: Optional[date] = None
    num_days: Optional[int] = Field(default=None, ge=1)
    travelers: int = Field(default=2, ge=1)
    budget: float = Field(..., gt=0, description="Total trip budget")
    currency: str = "USD"
    travel_style: str = "balanced"
    interests: List[str] = Field(default_factory=list)
    group_profile: Optional[GroupProfile] = None

    @model_validator(mode="after")
    def _resolve_day_count(self) -> "TripParameters":
        if self.end_date is not None:
            span = (self.end_date - self.start_date).days + 1
            if span < 1:
                raise ValueError("end_date must not be before start_date")
            if self.num_days is not None and self.num_days != span:
                raise ValueError(
                    f"num_days={self.num_days} does not match the date range ({span} days)"
                )
            self.num_days = span
        elif self.num_days is None:
            raise ValueError("either end_date or num_days is required")
        return self

    @property
    def day_count(self) -> int:
        return self.num_days

    def date_for(self, day_index: int) -> str:
        """ISO date of the 0-based day index."""
        return (self.start_date + timedelta(days=day_index)).isoformat()

    def group(self) -> GroupProfile:
        if self.group_profile is not None:
            return self.group_profile
        return GroupProfile(group_size=self.travelers)


# ============================================================================
# SESSION
# ============================================================================

class StreamSession(BaseModel):
    """One generation run for one trip."""
    trip_id: str
    request_id: str
    total_days: int
    start_date: str
    destination: str
    cached: bool = False
    resumed_from: Optional[int] = None
