"""
Stream event payloads.

Each payload class carries its tag in ``event``; on the wire the tag is the
SSE ``event:`` field and the payload (without the tag) is the JSON ``data:``.
"""
from typing import ClassVar, Dict, List, Optional, Type, Union, get_args
from pydantic import Field

from .trip import CamelModel, ItineraryDay
from .validation import ValidationMetadata, Verdict


class StreamPayload(CamelModel):
    """Base class for every event payload."""
    event: ClassVar[str] = ""

    @property
    def terminal(self) -> bool:
        return False


class MetaEvent(StreamPayload):
    event: ClassVar[str] = "meta"

    trip_id: str
    destination: str
    total_days: int
    start_date: str
    cached: Optional[bool] = None
    resumed_from: Optional[int] = None


class DayEvent(StreamPayload):
    event: ClassVar[str] = "day"

    day_index: int = Field(..., ge=0, description="0-based day index")
    day: ItineraryDay
    cached: Optional[bool] = None


class ProgressEvent(StreamPayload):
    event: ClassVar[str] = "progress"

    current_day: int
    total_days: int
    percent: int = Field(..., ge=0, le=100)
    message: str


class ValidationEvent(StreamPayload):
    event: ClassVar[str] = "validation"

    iteration: int
    status: Verdict
    budget_verified: bool
    logistics_verified: bool
    flagged_days: List[int] = Field(default_factory=list)
    logs: List[str] = Field(default_factory=list)


class RefinementEvent(StreamPayload):
    event: ClassVar[str] = "refinement"

    iteration: int
    days_to_refine: List[int] = Field(default_factory=list)
    budget_issues: List[str] = Field(default_factory=list)
    logistics_issues: List[str] = Field(default_factory=list)


class DoneEvent(StreamPayload):
    event: ClassVar[str] = "done"

    total_days: int
    total_activities: int
    validation: Optional[ValidationMetadata] = None

    @property
    def terminal(self) -> bool:
        return True


class ErrorEvent(StreamPayload):
    event: ClassVar[str] = "error"

    day_index: Optional[int] = None
    message: str
    recoverable: bool

    @property
    def terminal(self) -> bool:
        return not self.recoverable


StreamEvent = Union[
    MetaEvent,
    DayEvent,
    ProgressEvent,
    ValidationEvent,
    RefinementEvent,
    DoneEvent,
    ErrorEvent,
]

EVENT_TYPES: Dict[str, Type[StreamPayload]] = {
    cls.event: cls
    for cls in get_args(StreamEvent)
}
