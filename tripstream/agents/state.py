"""
State schema for the LangGraph refinement loop.

The loop state holds the current version of every generated day, keyed by its
1-based day number, plus the Director reports produced so far.
"""

from typing import TypedDict, List, Dict, Optional, Literal

from ..schemas.trip import ItineraryDay, TripParameters
from ..schemas.validation import ValidationReport


LoopOutcome = Literal["refine", "approved", "exhausted"]


class RefinementState(TypedDict):
    """
    State that flows between the ``validate`` and ``refine`` nodes.

    - validate: increments ``iteration``, records ``report`` and decides ``next_step``
    - refine: replaces flagged entries of ``days`` and extends ``refined_days``
    """
    # Input
    trip_id: str
    params: TripParameters
    days: Dict[int, ItineraryDay]
    locked_days: List[int]  # day numbers served from cache, never flagged
    max_iterations: int

    # Director output
    iteration: int
    report: Optional[ValidationReport]
    reports: List[ValidationReport]

    # Refinement output
    refined_days: List[int]

    # Routing
    next_step: Optional[LoopOutcome]
    logs: List[str]  # loop-level log lines, in addition to the Director's
