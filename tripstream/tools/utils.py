"""Utility tools for activity de-duplication across days."""

import re
from typing import Iterable, Set, Tuple

from ..schemas.trip import Activity, ItineraryDay
from ..utils.logger import get_logger
from .logistics import parse_time_to_minutes

logger = get_logger(__name__)

_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """Lowercase, alphanumeric words joined by dashes."""
    return _NON_SLUG_RE.sub("-", (text or "").lower()).strip("-")


def time_slot(time: str) -> str:
    """
    Bucket a start time into morning / afternoon / evening.

    Example:
        time_slot("09:30")    # "morning"
        time_slot("2:00 PM")  # "afternoon"
    """
    minutes = parse_time_to_minutes(time)
    if minutes < 12 * 60:
        return "morning"
    if minutes < 17 * 60:
        return "afternoon"
    return "evening"


def activity_key(activity: Activity) -> str:
    return f"{slugify(activity.name)}:{time_slot(activity.time)}"


def activity_keys(days: Iterable[ItineraryDay]) -> Set[str]:
    return {activity_key(a) for day in days for a in day.activities}


def dedupe_activities(day: ItineraryDay, seen: Set[str]) -> Tuple[ItineraryDay, int]:
    """
    Drop activities whose key already appeared on another day.

    Args:
        day: Freshly generated day
        seen: Keys of activities on the other days of the trip

    Returns:
        (day without repeats, number of dropped activities)
    """
    kept = [a for a in day.activities if activity_key(a) not in seen]
    dropped = len(day.activities) - len(kept)
    if not dropped:
        return day, 0

    logger.info("duplicate_activities_dropped", day=day.day, dropped=dropped)
    return day.model_copy(update={"activities": kept}), dropped
