"""
Validation Director for the itinerary refinement loop.

The Director runs the budget and logistics checks over a generated plan and
turns them into one verdict plus the list of days that need regeneration.
It is deterministic; no model is involved.
"""

import asyncio
import logging
from typing import Iterable, Optional, Sequence

from ..schemas.trip import ItineraryDay, TripParameters
from ..schemas.validation import ValidationReport
from ..tools.budget import check_budget, format_budget_feedback
from ..tools.logistics import check_logistics, format_logistics_feedback
from ..utils.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class ValidationDirector:
    """
    Approves or rejects a generated plan and flags the days to repair.

    Tolerances and limits come from ``Settings`` so they can be tuned per
    deployment without touching the call sites.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings

    def evaluate(
        self,
        days: Sequence[ItineraryDay],
        params: TripParameters,
        iteration: int,
        locked_days: Iterable[int] = (),
    ) -> ValidationReport:
        """
        Run both checks synchronously and build the report.

        Args:
            days: Current version of every generated day
            params: Trip parameters (budget, day count, group)
            iteration: 1-based Director invocation number
            locked_days: Day numbers that must not be flagged (served from cache)

        Returns:
            Immutable ValidationReport
        """
        ordered = sorted(days, key=lambda d: d.day)
        logs = [f"[Director] Starting combined validation for {len(ordered)} days"]

        budget = check_budget(ordered, params.budget, params.day_count, self.config)
        logistics = check_logistics(ordered, params.group(), self.config)
        logs.extend(budget.logs)
        logs.extend(logistics.logs)

        if budget.verified and logistics.verified:
            status = "APPROVED"
            logs.append("[Director] FINAL: APPROVED - Both budget and logistics validated")
        elif budget.status == "OVER_BUDGET" or logistics.status == "IMPOSSIBLE":
            status = "REJECTED"
            logs.append("[Director] FINAL: REJECTED - Critical validation failures detected")
        else:
            status = "WARNING"
            logs.append("[Director] FINAL: WARNING - Minor issues detected, may need refinement")

        flagged = sorted(set(budget.flagged_days) | set(logistics.flagged_days))
        locked = set(locked_days)
        if locked and flagged:
            skipped = [d for d in flagged if d in locked]
            if skipped:
                logs.append(f"[Director] Not flagging cached day(s) {', '.join(str(d) for d in skipped)}")
            flagged = [d for d in flagged if d not in locked]

        feedback_parts = [part for part in (format_budget_feedback(budget), format_logistics_feedback(logistics)) if part]
        feedback = "VALIDATION FEEDBACK:\n\n" + "\n\n".join(feedback_parts) if feedback_parts else ""

        logger.info(
            f"Director iteration {iteration}: {status} "
            f"(budget={budget.status}, logistics={logistics.status}, flagged={flagged})"
        )

        return ValidationReport(
            iteration=iteration,
            status=status,
            budget_verified=budget.verified,
            logistics_verified=logistics.verified,
            flagged_days=flagged,
            logs=logs,
            budget_issues=budget.suggestions,
            logistics_issues=logistics.suggestions,
            feedback=feedback,
        )

    async def review(
        self,
        days: Sequence[ItineraryDay],
        params: TripParameters,
        iteration: int,
        locked_days: Iterable[int] = (),
        timeout: Optional[float] = None,
    ) -> ValidationReport:
        """
        Evaluate off the event loop, bounded by the Director timeout.

        A timeout never hangs the session: it yields a WARNING report with no
        flagged days and both checks unverified.
        """
        timeout = self.config.director_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.evaluate, list(days), params, iteration, tuple(locked_days)),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Director iteration {iteration} timed out after {timeout}s")
            return timed_out_report(iteration, timeout)


def timed_out_report(iteration: int, timeout: float) -> ValidationReport:
    return ValidationReport(
        iteration=iteration,
        status="WARNING",
        budget_verified=False,
        logistics_verified=False,
        flagged_days=[],
        logs=[f"[Director] Validation timed out after {timeout:g}s - accepting plan unverified"],
    )
