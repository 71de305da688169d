"""Tests for the session registry and the stream service."""

import asyncio

import pytest

from conftest import FakeDayGenerator, drain, event_names, make_params
from tripstream.schemas.events import DayEvent
from tripstream.streaming.sessions import SessionRegistry
from tripstream.utils.exceptions import TripNotFoundError


@pytest.mark.asyncio
async def test_new_session_cancels_the_previous_one():
    registry = SessionRegistry()
    cancelled = asyncio.Event()

    async def long_running():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    async def short():
        return "done"

    first = await registry.start("trip_1", long_running)
    await asyncio.sleep(0)
    second = await registry.start("trip_1", short)

    assert cancelled.is_set()
    assert first.cancelled()
    assert await second == "done"


@pytest.mark.asyncio
async def test_sessions_of_different_trips_run_side_by_side():
    registry = SessionRegistry()
    gate = asyncio.Event()

    async def wait_for_gate():
        await gate.wait()

    first = await registry.start("trip_1", wait_for_gate)
    second = await registry.start("trip_2", wait_for_gate)

    assert registry.active("trip_1") is first
    assert registry.active("trip_2") is second
    gate.set()
    await asyncio.gather(first, second)
    assert registry.active("trip_1") is None


@pytest.mark.asyncio
async def test_cancel_reports_whether_a_session_was_running():
    registry = SessionRegistry()

    async def forever():
        await asyncio.Event().wait()

    await registry.start("trip_1", forever)
    await asyncio.sleep(0)

    assert await registry.cancel("trip_1") is True
    assert await registry.cancel("trip_1") is False


@pytest.mark.asyncio
async def test_reopening_a_stream_supersedes_the_running_session(make_service):
    generator = FakeDayGenerator(delays={1: 5.0})
    service = make_service(generator)
    record = service.store.create(make_params(num_days=2))

    first = await service.open_stream(record.trip_id)
    # Read until day 0 arrives, then wait for the first session to block on day 1
    first_events = []
    async for payload in first:
        first_events.append(payload)
        if isinstance(payload, DayEvent):
            break
    await asyncio.wait_for(generator.started(1).wait(), timeout=2.0)

    generator.delays = {}
    second = await service.open_stream(record.trip_id)
    first_events += await drain(first)

    assert first.closed
    assert generator.cancelled == [1]
    assert "done" not in event_names(first_events)
    # Day 0 of the first run is reused from the cache
    second_events = await asyncio.wait_for(drain(second), timeout=2.0)
    assert second_events[0].resumed_from == 1
    assert second_events[1].cached is True


@pytest.mark.asyncio
async def test_open_stream_for_unknown_trip_raises(make_service):
    service = make_service(FakeDayGenerator())

    with pytest.raises(TripNotFoundError):
        await service.open_stream("trip_missing")
