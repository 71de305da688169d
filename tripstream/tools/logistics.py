"""
Logistics check (the "Logistician").

Deterministic feasibility check of each day's schedule: activity density,
overlapping time windows, and whether consecutive locations are reachable in
the gap between them.
"""

import re
from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from .distance import estimate_transit_minutes
from ..schemas.trip import GroupProfile, ItineraryDay
from ..utils.config import Settings, settings as default_settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

LogisticsStatus = Literal["APPROVED", "IMPOSSIBLE", "TIGHT", "RELAXED"]
ConflictType = Literal["timing", "transit", "buffer", "density", "duration"]

DEFAULT_START_MINUTES = 9 * 60
DEFAULT_DURATION_MINUTES = 60
DAY_WINDOW_MINUTES = (22 - 8) * 60

_CLOCK_RE = re.compile(r"(\d{1,2}):(\d{2})\s*(AM|PM)?", re.IGNORECASE)
_HOURS_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:hours?|hrs?|h)\b")
_MINUTES_RE = re.compile(r"(\d+)\s*(?:minutes?|mins?|m)\b")
_COMBINED_RE = re.compile(r"(\d+)\s*(?:hours?|hrs?|h|:)\s*(?:and\s+)?(\d+)")


class Conflict(BaseModel):
    """One logistics finding on one day"""
    day: int
    type: ConflictType
    severity: Literal["error", "warning"]
    activity1: str
    activity2: Optional[str] = None
    issue: str
    suggestion: str


class DayLogistics(BaseModel):
    day: int
    date: str
    status: LogisticsStatus
    activity_count: int
    total_duration_minutes: int
    total_transit_minutes: int
    buffer_minutes: int
    conflicts: List[Conflict] = Field(default_factory=list)


class LogisticsCheck(BaseModel):
    """Result of a whole-trip logistics check"""
    status: LogisticsStatus
    error_count: int
    warning_count: int
    per_day: List[DayLogistics] = Field(default_factory=list)
    conflicts: List[Conflict] = Field(default_factory=list)
    flagged_days: List[int] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    logs: List[str] = Field(default_factory=list)

    @property
    def verified(self) -> bool:
        return self.status in ("APPROVED", "RELAXED")


def parse_time_to_minutes(value: str) -> int:
    """Parse '9:00 AM' or '14:30' into minutes from midnight."""
    match = _CLOCK_RE.search(value or "")
    if not match:
        return DEFAULT_START_MINUTES

    hours, minutes = int(match.group(1)), int(match.group(2))
    period = (match.group(3) or "").upper()
    if period == "PM" and hours != 12:
        hours += 12
    elif period == "AM" and hours == 12:
        hours = 0
    return hours * 60 + minutes


def parse_duration_to_minutes(value: str) -> int:
    """Parse '2 hours', '1.5h', '90 min', '1h 30m' or '2 hours 30 minutes' into minutes."""
    text = (value or "").lower()
    if not text:
        return DEFAULT_DURATION_MINUTES

    combined = _COMBINED_RE.search(text)
    if combined:
        return int(combined.group(1)) * 60 + int(combined.group(2))
    hours = _HOURS_RE.search(text)
    if hours:
        return round(float(hours.group(1)) * 60)
    minutes = _MINUTES_RE.search(text)
    if minutes:
        return int(minutes.group(1))
    return DEFAULT_DURATION_MINUTES


def format_minutes(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    period = "PM" if hours >= 12 else "AM"
    display = hours - 12 if hours > 12 else (12 if hours == 0 else hours)
    return f"{display}:{mins:02d} {period}"


def required_buffer(profile: GroupProfile, config: Settings = default_settings) -> int:
    """Minutes of slack wanted between activities for this group."""
    buffer = config.min_buffer_minutes
    if profile.has_toddler:
        buffer = max(buffer, config.toddler_buffer_minutes)
    if profile.has_elderly or profile.has_mobility_issues:
        buffer = max(buffer, config.elderly_buffer_minutes)
    if profile.group_size > 4:
        buffer += 10
    return buffer


def check_day(
    day: ItineraryDay,
    buffer: int,
    profile: GroupProfile,
    config: Settings = default_settings,
) -> DayLogistics:
    """Run every per-day rule against one day."""
    conflicts: List[Conflict] = []
    activities = day.activities
    total_duration = 0
    total_transit = 0

    if len(activities) > config.max_activities_per_day:
        conflicts.append(Conflict(
            day=day.day,
            type="density",
            severity="error",
            activity1=f"{len(activities)} activities",
            issue=f"Too many activities ({len(activities)}) for one day. Maximum recommended: {config.max_activities_per_day}",
            suggestion=f"Remove {len(activities) - config.max_activities_per_day} activities from Day {day.day}",
        ))
    elif len(activities) > config.max_activities_per_day - 1 and profile.has_toddler:
        conflicts.append(Conflict(
            day=day.day,
            type="density",
            severity="warning",
            activity1=f"{len(activities)} activities",
            issue=f"{len(activities)} activities may be too many for a family with young children",
            suggestion=f"Consider reducing to {config.max_activities_per_day - 2} activities for Day {day.day}",
        ))

    for current, following in zip(activities, activities[1:] + [None]):
        duration = parse_duration_to_minutes(current.duration)
        total_duration += duration
        if following is None:
            break

        start = parse_time_to_minutes(current.time)
        end = start + duration
        next_start = parse_time_to_minutes(following.time)

        if end > next_start:
            conflicts.append(Conflict(
                day=day.day,
                type="timing",
                severity="error",
                activity1=current.name,
                activity2=following.name,
                issue=f'"{current.name}" ends at {format_minutes(end)} but "{following.name}" starts at {format_minutes(next_start)}',
                suggestion=f'Move "{following.name}" to start after {format_minutes(end + buffer)}',
            ))
            continue

        transit = estimate_transit_minutes(
            current.coordinates,
            following.coordinates,
            current.transport_mode,
            config.walking_threshold_km,
        )
        total_transit += transit
        available = next_start - end

        if available < transit:
            conflicts.append(Conflict(
                day=day.day,
                type="transit",
                severity="error",
                activity1=current.name,
                activity2=following.name,
                issue=f"Only {available}min between activities, but transit takes ~{transit}min",
                suggestion=f"Add {transit - available + buffer}min gap or choose closer locations",
            ))
        elif available < transit + buffer:
            conflicts.append(Conflict(
                day=day.day,
                type="buffer",
                severity="warning",
                activity1=current.name,
                activity2=following.name,
                issue=f"Only {available - transit}min buffer after transit (need {buffer}min)",
                suggestion=f"Consider {buffer}min buffer for comfort, especially with {'children' if profile.has_toddler else 'the group'}",
            ))

    active = total_duration + total_transit
    max_minutes = config.max_activity_hours_per_day * 60
    if active > max_minutes:
        conflicts.append(Conflict(
            day=day.day,
            type="duration",
            severity="warning",
            activity1=f"{round(active / 60)}h total",
            issue=f"Day has {round(active / 60)}h of activities/transit (max recommended: {config.max_activity_hours_per_day}h)",
            suggestion=f"Reduce total activity time by {round((active - max_minutes) / 60)}h",
        ))

    slack = max(0, DAY_WINDOW_MINUTES - active)
    errors = [c for c in conflicts if c.severity == "error"]
    warnings = [c for c in conflicts if c.severity == "warning"]

    if errors:
        status = "IMPOSSIBLE"
    elif len(warnings) > 1:
        status = "TIGHT"
    elif slack > 180 and len(activities) <= 3:
        status = "RELAXED"
    else:
        status = "APPROVED"

    return DayLogistics(
        day=day.day,
        date=day.date,
        status=status,
        activity_count=len(activities),
        total_duration_minutes=total_duration,
        total_transit_minutes=total_transit,
        buffer_minutes=slack,
        conflicts=conflicts,
    )


def check_logistics(
    days: Sequence[ItineraryDay],
    profile: GroupProfile,
    config: Settings = default_settings,
) -> LogisticsCheck:
    """
    Validate time and travel feasibility of every day.

    Args:
        days: Generated days
        profile: Travelling group, drives the buffer requirement
        config: Settings carrying the logistics limits

    Returns:
        LogisticsCheck with overall status, conflicts and flagged day numbers
    """
    logs = [
        f"[Logistician] Starting logistics validation for {len(days)} days",
        f"[Logistician] Group profile: {profile.group_size} travelers, "
        f"toddler: {profile.has_toddler}, elderly: {profile.has_elderly}",
    ]
    buffer = required_buffer(profile, config)
    logs.append(f"[Logistician] Required buffer between activities: {buffer} minutes")

    per_day: List[DayLogistics] = []
    conflicts: List[Conflict] = []
    flagged: List[int] = []

    for day in days:
        result = check_day(day, buffer, profile, config)
        per_day.append(result)
        conflicts.extend(result.conflicts)

        if result.status == "IMPOSSIBLE":
            flagged.append(day.day)
            count = sum(1 for c in result.conflicts if c.severity == "error")
            logs.append(f"[Logistician] Day {day.day} REJECTED: {count} impossible conflicts")
        elif result.status == "TIGHT":
            count = sum(1 for c in result.conflicts if c.severity == "warning")
            logs.append(f"[Logistician] Day {day.day} WARNING: Schedule is tight with {count} warnings")
        else:
            logs.append(f"[Logistician] Day {day.day} APPROVED: {result.activity_count} activities, {result.buffer_minutes}min buffer")

    error_count = sum(1 for c in conflicts if c.severity == "error")
    warning_count = len(conflicts) - error_count

    if error_count:
        status = "IMPOSSIBLE"
        logs.append(f"[Logistician] FINAL VERDICT: IMPOSSIBLE - {error_count} blocking conflicts found")
    elif warning_count > 2:
        status = "TIGHT"
        logs.append(f"[Logistician] FINAL VERDICT: TIGHT - {warning_count} warnings, schedule may be stressful")
    elif not conflicts and all(len(d.activities) <= 3 for d in days):
        status = "RELAXED"
        logs.append("[Logistician] FINAL VERDICT: RELAXED - Comfortable schedule with good buffer time")
    else:
        status = "APPROVED"
        logs.append("[Logistician] FINAL VERDICT: APPROVED - Schedule is feasible")

    logger.debug("logistics_checked", status=status, errors=error_count, warnings=warning_count, flagged_days=flagged)

    return LogisticsCheck(
        status=status,
        error_count=error_count,
        warning_count=warning_count,
        per_day=per_day,
        conflicts=conflicts,
        flagged_days=flagged,
        suggestions=logistics_suggestions(conflicts, profile),
        logs=logs,
    )


def logistics_suggestions(conflicts: List[Conflict], profile: GroupProfile) -> List[str]:
    """Actionable suggestions grouped by conflict type."""
    if not conflicts:
        return []

    by_type = {}
    for conflict in conflicts:
        by_type.setdefault(conflict.type, []).append(conflict)

    suggestions: List[str] = []
    if "timing" in by_type:
        timing_days = sorted({c.day for c in by_type["timing"]})
        plural = "s" if len(timing_days) > 1 else ""
        suggestions.append(f"Fix time ordering on Day{plural} {', '.join(str(d) for d in timing_days)}.")
    if "transit" in by_type:
        suggestions.append("Allow more travel time between activities or choose closer locations.")
    if "buffer" in by_type and profile.has_toddler:
        suggestions.append("Add rest breaks for the family - toddlers need downtime between activities.")
    if "density" in by_type:
        suggestions.append(f"Reduce activities per day (currently {by_type['density'][0].activity1}).")
    if "duration" in by_type:
        suggestions.append("Shorten overall day length - the schedule is too packed.")
    return suggestions


def format_logistics_feedback(check: LogisticsCheck) -> str:
    """Logistics section of the refinement prompt; empty when verified."""
    if check.verified:
        return ""

    lines = [
        f"LOGISTICS VALIDATION {'FAILED' if check.status == 'IMPOSSIBLE' else 'WARNING'}:",
        f"- Total conflicts: {len(check.conflicts)} ({check.error_count} errors, {check.warning_count} warnings)",
    ]
    if check.flagged_days:
        lines.append(f"- Problem days: {', '.join(str(d) for d in check.flagged_days)}")
    for conflict in [c for c in check.conflicts if c.severity == "error"][:3]:
        lines.append(f"  - Day {conflict.day}: {conflict.issue}")
    if check.status == "IMPOSSIBLE":
        lines.append(f"REQUIRED: Fix the {check.error_count} impossible conflicts before proceeding.")
    if check.suggestions:
        lines.append(f"SUGGESTIONS: {' '.join(check.suggestions)}")
    return "\n".join(lines)
