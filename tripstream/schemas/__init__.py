"""
Pydantic schemas for the tripstream API and event stream
"""
from .trip import (
    Activity,
    Coordinates,
    GroupProfile,
    ItineraryDay,
    LocalFood,
    StreamSession,
    TripParameters,
)
from .validation import RefinementRequest, ValidationMetadata, ValidationReport
from .events import (
    EVENT_TYPES,
    DayEvent,
    DoneEvent,
    ErrorEvent,
    MetaEvent,
    ProgressEvent,
    RefinementEvent,
    StreamEvent,
    StreamPayload,
    ValidationEvent,
)
from .requests import CreateTripRequest

__all__ = [
    # Itinerary content
    "Activity",
    "Coordinates",
    "LocalFood",
    "ItineraryDay",
    # Trip / session
    "GroupProfile",
    "TripParameters",
    "StreamSession",
    # Director
    "ValidationReport",
    "RefinementRequest",
    "ValidationMetadata",
    # Stream events
    "StreamPayload",
    "StreamEvent",
    "EVENT_TYPES",
    "MetaEvent",
    "DayEvent",
    "ProgressEvent",
    "ValidationEvent",
    "RefinementEvent",
    "DoneEvent",
    "ErrorEvent",
    # API request models
    "CreateTripRequest",
]
