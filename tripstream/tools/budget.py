"""
Budget check (the "Bursar").

Deterministic comparison of itinerary costs against the trip budget. Pure
arithmetic; it exists to catch cost hallucinations from the day generator.
"""

from typing import Dict, List, Literal, Sequence

from pydantic import BaseModel, Field

from ..schemas.trip import ItineraryDay
from ..utils.config import Settings, settings as default_settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

BudgetStatus = Literal["APPROVED", "OVER_BUDGET", "NEAR_LIMIT", "UNDER_BUDGET"]

# Activity type -> cost category
COST_CATEGORIES = {
    "activity": "activities",
    "meal": "meals",
    "transport": "transport",
    "lodging": "lodging",
}


class DayBudget(BaseModel):
    """Per-day cost breakdown against the daily allocation"""
    day: int
    date: str
    allocated: float
    actual: float
    delta: float
    status: BudgetStatus
    breakdown: Dict[str, float]


class BudgetCheck(BaseModel):
    """Result of a whole-trip budget check"""
    status: BudgetStatus
    total_budget: float
    total_estimated_cost: float
    delta: float
    delta_percentage: float
    daily_allocation: float
    per_day: List[DayBudget] = Field(default_factory=list)
    flagged_days: List[int] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    logs: List[str] = Field(default_factory=list)

    @property
    def verified(self) -> bool:
        return self.status in ("APPROVED", "UNDER_BUDGET")


def _classify(delta_percentage: float, config: Settings) -> BudgetStatus:
    if delta_percentage > config.budget_reject_threshold:
        return "OVER_BUDGET"
    if delta_percentage > config.budget_warning_threshold:
        return "NEAR_LIMIT"
    if delta_percentage < -config.budget_under_threshold:
        return "UNDER_BUDGET"
    return "APPROVED"


def day_breakdown(day: ItineraryDay, daily_allocation: float, config: Settings = default_settings) -> DayBudget:
    """Sum a day's costs by category and classify it against its allocation."""
    breakdown = {"activities": 0.0, "meals": 0.0, "transport": 0.0, "lodging": 0.0}

    for activity in day.activities:
        breakdown[COST_CATEGORIES.get(activity.type, "activities")] += activity.estimated_cost
    for food in day.local_food or []:
        breakdown["meals"] += food.estimated_cost

    actual = breakdown["activities"] + breakdown["meals"] + breakdown["transport"]
    if config.include_accommodation:
        actual += breakdown["lodging"]

    delta = actual - daily_allocation
    delta_percentage = delta / daily_allocation if daily_allocation > 0 else 0.0

    return DayBudget(
        day=day.day,
        date=day.date,
        allocated=daily_allocation,
        actual=actual,
        delta=delta,
        status=_classify(delta_percentage, config),
        breakdown=breakdown,
    )


def check_budget(
    days: Sequence[ItineraryDay],
    total_budget: float,
    num_days: int,
    config: Settings = default_settings,
) -> BudgetCheck:
    """
    Validate itinerary costs against the trip budget.

    Args:
        days: Generated days (missing days are simply absent)
        total_budget: Total budget for the whole trip
        num_days: Declared number of days, used for the daily allocation
        config: Settings carrying the tolerance band

    Returns:
        BudgetCheck with overall status, per-day breakdown and flagged day numbers
    """
    logs = [f"[Bursar] Starting budget validation: ${total_budget:.2f} for {num_days} days"]

    effective_budget = total_budget * (1 - config.budget_buffer_percentage)
    daily_allocation = effective_budget / max(num_days, 1)
    logs.append(
        f"[Bursar] Daily allocation: ${daily_allocation:.2f} "
        f"(with {config.budget_buffer_percentage * 100:.0f}% buffer)"
    )

    per_day: List[DayBudget] = []
    flagged: List[int] = []
    total_cost = 0.0

    for day in days:
        breakdown = day_breakdown(day, daily_allocation, config)
        per_day.append(breakdown)
        total_cost += breakdown.actual

        if breakdown.status == "OVER_BUDGET":
            flagged.append(day.day)
            logs.append(
                f"[Bursar] Day {day.day} REJECTED: ${breakdown.actual:.2f} exceeds allocation "
                f"of ${daily_allocation:.2f} by ${breakdown.delta:.2f}"
            )
        elif breakdown.status == "NEAR_LIMIT":
            logs.append(f"[Bursar] Day {day.day} WARNING: ${breakdown.actual:.2f} is near limit (${daily_allocation:.2f})")
        else:
            logs.append(f"[Bursar] Day {day.day} APPROVED: ${breakdown.actual:.2f} within budget")

    delta = total_cost - total_budget
    delta_percentage = delta / total_budget if total_budget > 0 else 0.0
    status = _classify(delta_percentage, config)

    if status == "OVER_BUDGET":
        logs.append(f"[Bursar] FINAL VERDICT: REJECTED - Total ${total_cost:.2f} exceeds budget by {delta_percentage * 100:.1f}%")
    elif status == "NEAR_LIMIT":
        logs.append(f"[Bursar] FINAL VERDICT: WARNING - Total ${total_cost:.2f} is {delta_percentage * 100:.1f}% over budget")
    elif status == "UNDER_BUDGET":
        logs.append(f"[Bursar] FINAL VERDICT: UNDER BUDGET - Only using {total_cost / total_budget * 100:.1f}% of budget")
    else:
        logs.append(f"[Bursar] FINAL VERDICT: APPROVED - Total ${total_cost:.2f} within budget")

    logger.debug(
        "budget_checked",
        status=status,
        total_cost=round(total_cost, 2),
        total_budget=total_budget,
        flagged_days=flagged,
    )

    return BudgetCheck(
        status=status,
        total_budget=total_budget,
        total_estimated_cost=total_cost,
        delta=delta,
        delta_percentage=delta_percentage,
        daily_allocation=daily_allocation,
        per_day=per_day,
        flagged_days=flagged,
        suggestions=budget_suggestions(flagged, per_day, total_budget, total_cost, status),
        logs=logs,
    )


def budget_suggestions(
    flagged_days: List[int],
    per_day: List[DayBudget],
    total_budget: float,
    total_cost: float,
    status: BudgetStatus,
) -> List[str]:
    """Actionable suggestions for the refinement request."""
    if status == "APPROVED":
        return []
    if status == "UNDER_BUDGET":
        return [f"You have ${total_budget - total_cost:.0f} unused - consider adding premium experiences."]

    totals = {"activities": 0.0, "meals": 0.0, "transport": 0.0, "lodging": 0.0}
    for day in per_day:
        for category, amount in day.breakdown.items():
            totals[category] += amount

    top_category, top_amount = max(totals.items(), key=lambda item: item[1])
    over_amount = total_cost - total_budget
    suggestions: List[str] = []

    if flagged_days:
        plural = "s" if len(flagged_days) > 1 else ""
        suggestions.append(f"Reduce costs on Day{plural} {', '.join(str(d) for d in flagged_days)}.")

    if top_category == "activities" and top_amount > over_amount:
        suggestions.append(f"Consider free alternatives for some activities (-${min(top_amount * 0.3, over_amount):.0f} potential savings).")
    elif top_category == "meals" and top_amount > over_amount * 0.5:
        suggestions.append(f"Switch some restaurant meals to local street food (-${min(top_amount * 0.4, over_amount):.0f} potential savings).")
    elif top_category == "lodging" and top_amount > over_amount:
        suggestions.append(f"Consider budget accommodations or hostels (-${min(top_amount * 0.5, over_amount):.0f} potential savings).")
    elif top_category == "transport" and top_amount > over_amount * 0.3:
        suggestions.append(f"Use public transit instead of taxis/rideshare (-${min(top_amount * 0.6, over_amount):.0f} potential savings).")

    if over_amount > total_budget * 0.3:
        suggestions.append("Consider reducing trip length by 1 day to stay within budget.")

    return suggestions


def format_budget_feedback(check: BudgetCheck) -> str:
    """Budget section of the refinement prompt; empty when there is nothing to fix."""
    if check.verified and not check.flagged_days:
        return ""

    lines = [
        "BUDGET VALIDATION FAILED:",
        f"- Total estimated cost: ${check.total_estimated_cost:.2f}",
        f"- User budget: ${check.total_budget:.2f}",
        f"- Over by: ${check.delta:.2f} ({check.delta_percentage * 100:.1f}%)",
    ]
    for day in check.per_day:
        if day.day in check.flagged_days:
            lines.append(f"  - Day {day.day}: ${day.actual:.2f} (should be <= ${day.allocated:.2f})")
    lines.append(f"REQUIRED: Reduce costs to stay within ${check.total_budget:.2f} total.")
    if check.suggestions:
        lines.append(f"SUGGESTIONS: {' '.join(check.suggestions)}")
    return "\n".join(lines)
