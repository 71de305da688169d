"""
Tools package for itinerary validation.

This package contains deterministic helpers for:
- Budget validation (the Bursar)
- Logistics validation (the Logistician)
- Distance and travel time calculations
- Activity de-duplication across days
"""

from .budget import check_budget
from .distance import estimate_transit_minutes, haversine_distance
from .logistics import check_logistics
from .utils import activity_key, dedupe_activities

__all__ = [
    "check_budget",
    "check_logistics",
    "estimate_transit_minutes",
    "haversine_distance",
    "activity_key",
    "dedupe_activities",
]
