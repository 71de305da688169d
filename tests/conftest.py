"""Shared fixtures: a scripted day generator and fresh stores per test."""

import asyncio
from datetime import date
from typing import Dict, Iterable, List, Optional

import pytest

from tripstream.agents.generator import DayRequest
from tripstream.memory.cache import DayCache
from tripstream.memory.trip_store import TripStore
from tripstream.schemas.trip import Activity, ItineraryDay, TripParameters
from tripstream.streaming.channel import EventChannel
from tripstream.streaming.producer import StreamProducer
from tripstream.streaming.service import ItineraryStreamService
from tripstream.utils.config import Settings
from tripstream.utils.exceptions import DayGenerationError, GeneratorUnavailableError

START_DATE = date(2026, 5, 1)
CHEAP = 50.0  # per activity, 150 per day


def make_day(number: int, day_date: str, cost_per_activity: float = CHEAP, names: Optional[List[str]] = None) -> ItineraryDay:
    """A logistically comfortable day: three one-hour activities, three hours apart."""
    names = names or [f"Day {number} Museum", f"Day {number} Market", f"Day {number} Garden"]
    times = ["09:00", "12:00", "15:00"]
    return ItineraryDay(
        day=number,
        date=day_date,
        title=f"Day {number}",
        activities=[
            Activity(time=time, name=name, estimated_cost=cost_per_activity, duration="1 hour")
            for time, name in zip(times, names)
        ],
    )


class FakeDayGenerator:
    """
    Scripted stand-in for the LLM generator.

    Args:
        costs: day index -> per-activity cost on the first attempt
        refined_costs: day index -> per-activity cost when refining
        fail: day indices whose first attempt raises DayGenerationError
        unavailable: every call raises GeneratorUnavailableError
        delays: day index -> seconds to sleep before answering
        names: fixed activity names for every day
    """

    def __init__(
        self,
        costs: Optional[Dict[int, float]] = None,
        refined_costs: Optional[Dict[int, float]] = None,
        fail: Iterable[int] = (),
        unavailable: bool = False,
        delays: Optional[Dict[int, float]] = None,
        names: Optional[List[str]] = None,
    ):
        self.costs = costs or {}
        self.refined_costs = refined_costs or {}
        self.fail = set(fail)
        self.unavailable = unavailable
        self.delays = delays or {}
        self.names = names
        self.requests: List[DayRequest] = []
        self.cancelled: List[int] = []
        self._started: Dict[int, asyncio.Event] = {}

    def started(self, day_index: int) -> asyncio.Event:
        """Set once a call for the day index has begun."""
        return self._started.setdefault(day_index, asyncio.Event())

    async def generate_day(self, request: DayRequest) -> ItineraryDay:
        self.requests.append(request)
        self.started(request.day_index).set()
        delay = self.delays.get(request.day_index, 0)
        if delay:
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                self.cancelled.append(request.day_index)
                raise

        if self.unavailable:
            raise GeneratorUnavailableError("No LLM provider available")
        if request.refinement is None and request.day_index in self.fail:
            raise DayGenerationError("model returned garbage", day_index=request.day_index)

        if request.refinement is not None:
            cost = self.refined_costs.get(request.day_index, self.costs.get(request.day_index, CHEAP))
        else:
            cost = self.costs.get(request.day_index, CHEAP)
        return make_day(request.day_number, request.date, cost, self.names)

    @property
    def refinement_requests(self) -> List[DayRequest]:
        return [r for r in self.requests if r.refinement is not None]


def make_params(num_days: int = 5, budget: float = 1000.0, **overrides) -> TripParameters:
    return TripParameters(
        destination="Lisbon, Portugal",
        start_date=START_DATE,
        num_days=num_days,
        budget=budget,
        travelers=2,
        **overrides,
    )


@pytest.fixture
def store() -> TripStore:
    return TripStore()


@pytest.fixture
def cache() -> DayCache:
    return DayCache(ttl_seconds=3600)


@pytest.fixture
def make_producer(store, cache):
    """Build a producer for a freshly stored trip; settings overrides as kwargs."""
    def _make(generator, num_days: int = 5, budget: float = 1000.0, **overrides) -> StreamProducer:
        params = make_params(num_days=num_days, budget=budget)
        record = store.create(params)
        return StreamProducer(
            trip_id=record.trip_id,
            params=params,
            channel=EventChannel(),
            generator=generator,
            cache=cache,
            store=store,
            config=Settings(**overrides),
        )
    return _make


@pytest.fixture
def make_service(store, cache):
    def _make(generator, **overrides) -> ItineraryStreamService:
        return ItineraryStreamService(
            generator=generator,
            store=store,
            cache=cache,
            config=Settings(**overrides),
        )
    return _make


async def drain(channel: EventChannel) -> list:
    """Collect every payload left on a channel."""
    return [payload async for payload in channel]


def event_names(events: list) -> List[str]:
    return [event.event for event in events]
