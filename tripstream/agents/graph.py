"""
LangGraph workflow for the validation/refinement loop.

The graph alternates between the Director (``validate``) and targeted
regeneration of flagged days (``refine``) until the plan is approved or the
iteration cap is reached. Side effects (event emission, generator calls) go
through the session object passed in ``config["configurable"]["session"]``.
"""

from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, END
from typing import Dict, Iterable, List, Optional, Protocol
import logging

from .state import RefinementState
from ..schemas.events import RefinementEvent, StreamPayload, ValidationEvent
from ..schemas.trip import ItineraryDay, TripParameters
from ..schemas.validation import RefinementRequest, ValidationReport

logger = logging.getLogger(__name__)


class RefinementSession(Protocol):
    """What the loop needs from the session that runs it."""

    async def emit(self, payload: StreamPayload) -> None:
        ...

    async def review(
        self,
        days: List[ItineraryDay],
        iteration: int,
        locked_days: Iterable[int],
    ) -> ValidationReport:
        ...

    def can_generate(self) -> bool:
        ...

    async def regenerate(
        self,
        day_number: int,
        request: RefinementRequest,
        days: Dict[int, ItineraryDay],
    ) -> Optional[ItineraryDay]:
        ...


def _session(config: RunnableConfig) -> RefinementSession:
    return config["configurable"]["session"]


async def validate_node(state: RefinementState, config: RunnableConfig) -> dict:
    """
    Director node: validates the current plan and decides the next step.

    Emits exactly one ``validation`` event per invocation.
    """
    session = _session(config)
    iteration = state["iteration"] + 1
    days = [state["days"][number] for number in sorted(state["days"])]

    report = await session.review(days, iteration, state["locked_days"])
    await session.emit(ValidationEvent(
        iteration=report.iteration,
        status=report.status,
        budget_verified=report.budget_verified,
        logistics_verified=report.logistics_verified,
        flagged_days=report.flagged_days,
        logs=report.logs,
    ))

    logs = list(state["logs"])
    if report.approved:
        next_step = "approved"
    elif iteration >= state["max_iterations"]:
        next_step = "exhausted"
        logs.append(f"[Director] Max iterations ({state['max_iterations']}) reached - returning best effort")
    elif not report.flagged_days:
        next_step = "exhausted"
        logs.append("[Director] No refinable days flagged - returning best effort")
    elif not session.can_generate():
        next_step = "exhausted"
        logs.append("[Director] Generation budget exhausted - stopping refinement early")
    else:
        next_step = "refine"

    logger.info(f"Refinement loop iteration {iteration}: {report.status} -> {next_step}")

    return {
        "iteration": iteration,
        "report": report,
        "reports": state["reports"] + [report],
        "next_step": next_step,
        "logs": logs,
    }


async def refine_node(state: RefinementState, config: RunnableConfig) -> dict:
    """
    Refinement node: regenerates exactly the flagged days.

    A day that fails to regenerate keeps its previous version.
    """
    session = _session(config)
    report = state["report"]
    request = RefinementRequest(
        iteration=state["iteration"],
        days_to_refine=report.flagged_days,
        budget_issues=report.budget_issues,
        logistics_issues=report.logistics_issues,
        feedback=report.feedback,
    )
    await session.emit(RefinementEvent(
        iteration=request.iteration,
        days_to_refine=request.days_to_refine,
        budget_issues=request.budget_issues,
        logistics_issues=request.logistics_issues,
    ))

    days = dict(state["days"])
    refined = set(state["refined_days"])
    logs = list(state["logs"])

    for number in request.days_to_refine:
        new_day = await session.regenerate(number, request, days)
        if new_day is None:
            logs.append(f"[Director] Day {number} could not be refined - keeping previous version")
            continue
        days[number] = new_day
        refined.add(number)

    return {"days": days, "refined_days": sorted(refined), "logs": logs}


def route_after_validation(state: RefinementState) -> str:
    return state["next_step"]


def create_refinement_graph():
    """
    Create the LangGraph workflow for the refinement loop.

    validate -> (refine -> validate)* -> END

    Returns:
        Compiled LangGraph application
    """
    logger.info("Creating LangGraph refinement workflow")

    workflow = StateGraph(RefinementState)
    workflow.add_node("validate", validate_node)
    workflow.add_node("refine", refine_node)

    workflow.set_entry_point("validate")
    workflow.add_conditional_edges(
        "validate",
        route_after_validation,
        {"refine": "refine", "approved": END, "exhausted": END},
    )
    workflow.add_edge("refine", "validate")

    return workflow.compile()


def initial_state(
    trip_id: str,
    params: TripParameters,
    days: Dict[int, ItineraryDay],
    locked_days: Iterable[int],
    max_iterations: int,
) -> RefinementState:
    return {
        "trip_id": trip_id,
        "params": params,
        "days": dict(days),
        "locked_days": sorted(locked_days),
        "max_iterations": max_iterations,
        "iteration": 0,
        "report": None,
        "reports": [],
        "refined_days": [],
        "next_step": None,
        "logs": [],
    }


async def run_refinement_loop(
    session: RefinementSession,
    trip_id: str,
    params: TripParameters,
    days: Dict[int, ItineraryDay],
    locked_days: Iterable[int] = (),
    max_iterations: int = 3,
) -> RefinementState:
    """
    Run the loop to completion and return the final state.

    Args:
        session: Emits events and performs generator/Director calls
        days: Current days keyed by 1-based day number
        locked_days: Day numbers that must never be regenerated
        max_iterations: Cap on Director invocations (at least 1)
    """
    max_iterations = max(1, max_iterations)
    state = initial_state(trip_id, params, days, locked_days, max_iterations)
    # Each iteration is at most two node steps
    config: RunnableConfig = {
        "configurable": {"session": session},
        "recursion_limit": 2 * max_iterations + 5,
    }
    return await refinement_graph.ainvoke(state, config=config)


# Global graph instance
refinement_graph = create_refinement_graph()
