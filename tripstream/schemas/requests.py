"""
Pydantic schemas for API request bodies
"""
from pydantic import model_validator

from .trip import TripParameters
from ..utils.config import settings


class CreateTripRequest(TripParameters):
    """Request body for creating a new trip"""

    @model_validator(mode="after")
    def _check_generation_budget(self) -> "CreateTripRequest":
        if self.day_count > settings.max_trip_days:
            raise ValueError(
                f"Generation budget exceeded: max {settings.max_trip_days} days allowed"
            )
        return self

    def to_parameters(self) -> TripParameters:
        return TripParameters.model_validate(self.model_dump())
