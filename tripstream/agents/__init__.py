"""
Agents package for itinerary generation and refinement.

This package contains the day generator (with its LLM configuration), the
Validation Director, and the LangGraph refinement loop.
"""

from .state import RefinementState
from .llm_config import llm_provider, LLMProvider
from .generator import DayGenerator, DayRequest, LLMDayGenerator
from .director import ValidationDirector
from .graph import refinement_graph, create_refinement_graph, run_refinement_loop

__all__ = [
    "RefinementState",
    "llm_provider",
    "LLMProvider",
    "DayGenerator",
    "DayRequest",
    "LLMDayGenerator",
    "ValidationDirector",
    "refinement_graph",
    "create_refinement_graph",
    "run_refinement_loop",
]
