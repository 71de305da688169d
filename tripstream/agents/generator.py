"""
Day generator used by the stream producer.

``DayGenerator`` is the seam to the content-generation service. The default
``LLMDayGenerator`` asks a chat model for one day at a time in JSON and
validates the answer into an ``ItineraryDay``.
"""

from langchain_core.messages import SystemMessage, HumanMessage
from pydantic import ValidationError
from typing import List, Optional, Protocol
import json
import logging

from .llm_config import LLMProvider, llm_provider as default_provider
from ..schemas.trip import ItineraryDay, TripParameters
from ..schemas.validation import RefinementRequest
from ..utils.exceptions import DayGenerationError, GeneratorUnavailableError
from ..utils.retry import retry_with_exponential_backoff

logger = logging.getLogger(__name__)


class DayRequest:
    """Everything needed to produce one day."""

    def __init__(
        self,
        params: TripParameters,
        day_index: int,
        previous_days: Optional[List[str]] = None,
        refinement: Optional[RefinementRequest] = None,
        current: Optional[ItineraryDay] = None,
    ):
        self.params = params
        self.day_index = day_index
        self.previous_days = previous_days or []
        self.refinement = refinement
        self.current = current

    @property
    def day_number(self) -> int:
        return self.day_index + 1

    @property
    def date(self) -> str:
        return self.params.date_for(self.day_index)


class DayGenerator(Protocol):
    """Produces the content for a single day."""

    async def generate_day(self, request: DayRequest) -> ItineraryDay:
        ...


DAY_SYSTEM_PROMPT = """You are a travel itinerary writer. You write ONE day of a multi-day trip at a time.

Output ONLY valid JSON matching this schema:
{
  "day": number,
  "date": "YYYY-MM-DD",
  "title": "string",
  "activities": [
    {
      "time": "HH:MM",
      "name": "string",
      "description": "string",
      "type": "activity|meal|transport|lodging",
      "estimatedCost": number,
      "duration": "e.g. 2 hours",
      "location": "string",
      "coordinates": {"lat": number, "lng": number},
      "transportMode": "walk|metro|bus|taxi|train or null"
    }
  ],
  "localFood": [
    {"name": "string", "cuisine": "string", "priceRange": "string", "estimatedCost": number, "mustTry": "string"}
  ]
}

Rules:
- 3 to 5 activities, in chronological order, no overlapping times
- Leave enough time to travel between consecutive locations
- estimatedCost is in the trip currency for the whole group
- Keep the day within its share of the total budget
- Do not repeat activities from previous days

IMPORTANT: Return ONLY the JSON object, no additional text or explanation.
"""

REFINE_SYSTEM_PROMPT = """You are a travel expert FIXING one day of an itinerary based on validation feedback.
The previous version had budget or logistics issues. Use the same JSON schema as the original day.
Return ONLY the JSON object."""


def strip_code_fence(content: str) -> str:
    """Remove a surrounding markdown code block from a model answer."""
    content = content.strip()
    if not content.startswith("```"):
        return content
    lines = [line for line in content.split("\n") if not line.startswith("```")]
    return "\n".join(lines).strip()


def build_messages(request: DayRequest) -> list:
    params = request.params
    daily_budget = params.budget / params.day_count
    lines = [
        f"Destination: {params.destination}",
        f"Day {request.day_number} of {params.day_count}, date {request.date}",
        f"Travelers: {params.travelers}, style: {params.travel_style}",
        f"Total budget: {params.budget:.0f} {params.currency} (about {daily_budget:.0f} per day)",
    ]
    if params.interests:
        lines.append(f"Interests: {', '.join(params.interests)}")
    if request.previous_days:
        lines.append("Previous days:")
        lines.extend(f"- {summary}" for summary in request.previous_days)

    if request.refinement is None:
        return [SystemMessage(content=DAY_SYSTEM_PROMPT), HumanMessage(content="\n".join(lines))]

    if request.current is not None:
        lines.append("Current version of this day:")
        lines.append(json.dumps(request.current.to_wire(), indent=2))
    lines.append(request.refinement.prompt())
    return [
        SystemMessage(content=DAY_SYSTEM_PROMPT),
        SystemMessage(content=REFINE_SYSTEM_PROMPT),
        HumanMessage(content="\n".join(lines)),
    ]


class LLMDayGenerator:
    """Day generator backed by the chat model provider."""

    def __init__(self, provider: Optional[LLMProvider] = None):
        self.provider = provider or default_provider

    async def generate_day(self, request: DayRequest) -> ItineraryDay:
        """
        Generate (or regenerate) one day.

        Raises:
            GeneratorUnavailableError: No model provider is configured
            DayGenerationError: The model answer could not be turned into a day
        """
        mode = "Refining" if request.refinement else "Generating"
        logger.info(f"{mode} day {request.day_number} for {request.params.destination}")

        content = await self._complete(build_messages(request))
        try:
            data = json.loads(strip_code_fence(content))
        except json.JSONDecodeError as e:
            raise DayGenerationError(
                f"Failed to parse LLM response as JSON: {e}", day_index=request.day_index
            ) from e

        # The model does not get to renumber the day
        data["day"] = request.day_number
        data["date"] = request.date
        try:
            return ItineraryDay.model_validate(data)
        except ValidationError as e:
            raise DayGenerationError(
                f"LLM day did not match the schema: {e.error_count()} errors",
                day_index=request.day_index,
                context={"errors": e.errors()},
            ) from e

    @retry_with_exponential_backoff(max_attempts=2, base_delay=1.0, retryable_exceptions=(DayGenerationError,))
    async def _complete(self, messages: list) -> str:
        try:
            response = await self.provider.ainvoke_with_fallback(messages)
        except GeneratorUnavailableError:
            raise
        except Exception as e:
            raise DayGenerationError(f"LLM call failed: {e}") from e
        return response.content
