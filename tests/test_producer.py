"""Tests for the stream producer: event ordering, partial failures and refinement."""

import asyncio

import pytest

from conftest import FakeDayGenerator, drain, event_names, make_day
from tripstream.schemas.events import (
    DayEvent,
    DoneEvent,
    ErrorEvent,
    MetaEvent,
    ProgressEvent,
    RefinementEvent,
    ValidationEvent,
)

EXPENSIVE = 240.0  # per activity, 720 for the day


async def run_to_end(producer):
    status = await producer.run()
    return status, await drain(producer.channel)


def of_type(events, cls):
    return [e for e in events if isinstance(e, cls)]


@pytest.mark.asyncio
async def test_meta_first_and_done_last(make_producer):
    producer = make_producer(FakeDayGenerator(), num_days=3)

    status, events = await run_to_end(producer)

    assert status == "complete"
    assert isinstance(events[0], MetaEvent)
    assert isinstance(events[-1], DoneEvent)
    assert event_names(events).count("meta") == 1
    assert event_names(events).count("done") == 1
    meta = events[0]
    assert meta.total_days == 3
    assert meta.start_date == "2026-05-01"
    assert meta.cached is None


@pytest.mark.asyncio
async def test_days_emitted_in_index_order_with_progress(make_producer):
    producer = make_producer(FakeDayGenerator(), num_days=4)

    _, events = await run_to_end(producer)

    days = of_type(events, DayEvent)
    assert [d.day_index for d in days] == [0, 1, 2, 3]
    assert [d.day.day for d in days] == [1, 2, 3, 4]
    assert [d.day.date for d in days] == ["2026-05-01", "2026-05-02", "2026-05-03", "2026-05-04"]
    progress = of_type(events, ProgressEvent)
    assert [p.percent for p in progress] == [25, 50, 75, 100]
    # Each day is immediately followed by its progress event
    for day_event in days:
        position = events.index(day_event)
        assert isinstance(events[position + 1], ProgressEvent)


@pytest.mark.asyncio
async def test_later_days_receive_previous_day_summaries(make_producer):
    generator = FakeDayGenerator()
    producer = make_producer(generator, num_days=3)

    await run_to_end(producer)

    assert generator.requests[0].previous_days == []
    assert len(generator.requests[2].previous_days) == 2
    assert generator.requests[2].previous_days[0].startswith("Day 1:")


@pytest.mark.asyncio
async def test_budget_failure_on_one_day_refines_only_that_day(make_producer):
    generator = FakeDayGenerator(costs={2: EXPENSIVE}, refined_costs={2: 50.0})
    producer = make_producer(generator, num_days=5, budget=1000.0)

    _, events = await run_to_end(producer)

    validations = of_type(events, ValidationEvent)
    assert validations[0].status == "REJECTED"
    assert validations[0].flagged_days == [3]
    assert validations[0].budget_verified is False

    refinements = of_type(events, RefinementEvent)
    assert len(refinements) == 1
    assert refinements[0].days_to_refine == [3]
    assert refinements[0].budget_issues

    refinement_at = events.index(refinements[0])
    refreshed = [e for e in events[refinement_at:] if isinstance(e, DayEvent)]
    assert [e.day_index for e in refreshed] == [2]
    assert refreshed[0].day.total_cost() == 150.0

    assert validations[-1].status == "APPROVED"
    done = events[-1]
    assert done.validation.refined_days == [3]
    assert done.validation.total_iterations == 2
    assert done.validation.budget_verified is True
    assert [r.day_index for r in generator.refinement_requests] == [2]


@pytest.mark.asyncio
async def test_approved_plan_is_never_refined(make_producer):
    generator = FakeDayGenerator()
    producer = make_producer(generator, num_days=3)

    _, events = await run_to_end(producer)

    assert len(of_type(events, ValidationEvent)) == 1
    assert of_type(events, RefinementEvent) == []
    assert generator.refinement_requests == []
    done = events[-1]
    assert done.validation.total_iterations == 1
    assert done.validation.refined_days == []
    assert done.validation.budget_verified and done.validation.logistics_verified


@pytest.mark.asyncio
async def test_never_approved_stops_at_iteration_cap(make_producer):
    generator = FakeDayGenerator(costs={2: EXPENSIVE}, refined_costs={2: EXPENSIVE})
    producer = make_producer(generator, num_days=5, max_refinement_iterations=3)

    status, events = await run_to_end(producer)

    assert status == "complete"
    assert len(of_type(events, ValidationEvent)) == 3
    assert len(of_type(events, RefinementEvent)) == 2
    done = events[-1]
    assert isinstance(done, DoneEvent)
    assert done.validation.total_iterations == 3
    assert done.validation.budget_verified is False
    assert any("Max iterations" in line for line in done.validation.logs)


@pytest.mark.asyncio
async def test_refinement_precedes_its_days_and_next_validation(make_producer):
    generator = FakeDayGenerator(costs={2: EXPENSIVE}, refined_costs={2: EXPENSIVE})
    producer = make_producer(generator, num_days=5, max_refinement_iterations=3)

    _, events = await run_to_end(producer)

    tail = event_names(events)[event_names(events).index("validation"):]
    assert tail == [
        "validation", "refinement", "day",
        "validation", "refinement", "day",
        "validation", "done",
    ]


@pytest.mark.asyncio
async def test_failed_day_is_recoverable_and_total_days_unchanged(make_producer):
    generator = FakeDayGenerator(fail={1})
    producer = make_producer(generator, num_days=3)

    status, events = await run_to_end(producer)

    assert status == "complete"
    assert [d.day_index for d in of_type(events, DayEvent)] == [0, 2]
    errors = of_type(events, ErrorEvent)
    assert len(errors) == 1
    assert errors[0].day_index == 1
    assert errors[0].recoverable is True
    done = events[-1]
    assert done.total_days == 3
    assert done.total_activities == 6


@pytest.mark.asyncio
async def test_generation_timeout_is_a_recoverable_day_error(make_producer):
    generator = FakeDayGenerator(delays={1: 5.0})
    producer = make_producer(generator, num_days=3, day_generation_timeout=0.05)

    _, events = await run_to_end(producer)

    errors = of_type(events, ErrorEvent)
    assert [e.day_index for e in errors] == [1]
    assert "timed out" in errors[0].message
    assert isinstance(events[-1], DoneEvent)


@pytest.mark.asyncio
async def test_unavailable_generator_is_fatal(make_producer, store):
    producer = make_producer(FakeDayGenerator(unavailable=True), num_days=3)

    status, events = await run_to_end(producer)

    assert status == "failed"
    assert event_names(events) == ["meta", "error"]
    assert events[-1].recoverable is False
    assert store.get(producer.trip_id).status == "error"


@pytest.mark.asyncio
async def test_zero_generated_days_is_fatal(make_producer):
    producer = make_producer(FakeDayGenerator(fail={0, 1}), num_days=2)

    status, events = await run_to_end(producer)

    assert status == "failed"
    assert "done" not in event_names(events)
    fatal = events[-1]
    assert isinstance(fatal, ErrorEvent) and fatal.recoverable is False


@pytest.mark.asyncio
async def test_generator_call_budget_fails_remaining_days(make_producer):
    generator = FakeDayGenerator()
    producer = make_producer(generator, num_days=3, max_generator_calls=2)

    _, events = await run_to_end(producer)

    assert len(generator.requests) == 2
    errors = of_type(events, ErrorEvent)
    assert [e.day_index for e in errors] == [2]
    assert "budget" in errors[0].message
    assert isinstance(events[-1], DoneEvent)


@pytest.mark.asyncio
async def test_validation_can_be_disabled(make_producer):
    producer = make_producer(FakeDayGenerator(costs={0: EXPENSIVE}), num_days=2, enable_validation=False)

    _, events = await run_to_end(producer)

    assert "validation" not in event_names(events)
    assert events[-1].validation is None


@pytest.mark.asyncio
async def test_concurrent_generation_still_emits_in_order(make_producer):
    generator = FakeDayGenerator(delays={0: 0.15, 1: 0.05, 2: 0.01})
    producer = make_producer(generator, num_days=3, generation_concurrency=3)

    _, events = await run_to_end(producer)

    assert [d.day_index for d in of_type(events, DayEvent)] == [0, 1, 2]


@pytest.mark.asyncio
async def test_repeated_activities_are_dropped_from_later_days(make_producer):
    generator = FakeDayGenerator(names=["Belem Tower", "Time Out Market", "Alfama Walk"])
    producer = make_producer(generator, num_days=2, enable_validation=False)

    _, events = await run_to_end(producer)

    days = of_type(events, DayEvent)
    assert len(days[0].day.activities) == 3
    assert days[1].day.activities == []


@pytest.mark.asyncio
async def test_days_are_persisted_and_cached(make_producer, store, cache):
    producer = make_producer(FakeDayGenerator(), num_days=2)

    await run_to_end(producer)

    record = store.get(producer.trip_id)
    assert sorted(record.days) == [0, 1]
    assert record.status == "complete"
    assert cache.get(producer.trip_id, 1) is not None


@pytest.mark.asyncio
async def test_cached_days_resume_and_are_never_refined(make_producer, cache):
    generator = FakeDayGenerator()
    producer = make_producer(generator, num_days=3)
    # An over-budget day served from cache cannot be regenerated
    cache.put(producer.trip_id, 0, make_day(1, "2026-05-01", cost_per_activity=400.0))
    cache.put(producer.trip_id, 1, make_day(2, "2026-05-02"))

    _, events = await run_to_end(producer)

    meta = events[0]
    assert meta.resumed_from == 2
    assert meta.cached is None
    cached = [d for d in of_type(events, DayEvent) if d.cached]
    assert [d.day_index for d in cached] == [0, 1]
    assert [r.day_index for r in generator.requests] == [2]

    validation = of_type(events, ValidationEvent)[0]
    assert validation.status == "REJECTED"
    assert validation.flagged_days == []
    assert of_type(events, RefinementEvent) == []
    assert events[-1].validation.total_iterations == 1


@pytest.mark.asyncio
async def test_fully_cached_trip_skips_generation_and_validation(make_producer, cache):
    generator = FakeDayGenerator()
    producer = make_producer(generator, num_days=2)
    cache.put(producer.trip_id, 0, make_day(1, "2026-05-01"))
    cache.put(producer.trip_id, 1, make_day(2, "2026-05-02"))

    _, events = await run_to_end(producer)

    assert event_names(events) == ["meta", "day", "day", "done"]
    assert events[0].cached is True
    assert generator.requests == []
    assert events[-1].validation is None


@pytest.mark.asyncio
async def test_closed_channel_stops_the_session(make_producer, store):
    generator = FakeDayGenerator(delays={1: 5.0})
    producer = make_producer(generator, num_days=3)
    task = asyncio.create_task(producer.run())

    received = []
    async for payload in producer.channel:
        received.append(payload)
        if isinstance(payload, DayEvent):
            producer.channel.close()
            break

    status = await asyncio.wait_for(task, timeout=2.0)
    assert status == "disconnected"
    assert generator.cancelled == [1]
    assert len(generator.requests) == 2
    assert store.get(producer.trip_id).status == "idle"
