"""Tests for the consumer state machine."""

import asyncio
from typing import List, Optional

import pytest

from conftest import FakeDayGenerator, make_day, make_params
from tripstream.schemas.events import (
    DayEvent,
    DoneEvent,
    ErrorEvent,
    MetaEvent,
    ProgressEvent,
    RefinementEvent,
    ValidationEvent,
)
from tripstream.schemas.validation import ValidationMetadata
from tripstream.streaming.connectors import ChannelConnector
from tripstream.streaming.consumer import CONNECTION_LOST_MESSAGE, ItineraryStreamConsumer, StreamStatus
from tripstream.streaming.transport import SSEDecoder, encode_event
from tripstream.utils.exceptions import StreamConnectionError, TripStreamError


class ScriptedConnector:
    """Replays encoded frames; can then fail, hang or simply end."""

    def __init__(self, *runs: List[str], hang: bool = False, fail_with: Optional[Exception] = None):
        self.runs = list(runs)
        self.hang = hang
        self.fail_with = fail_with
        self.connects = 0
        self.closed = 0

    async def connect(self, trip_id):
        frames = self.runs[min(self.connects, len(self.runs) - 1)]
        self.connects += 1
        decoder = SSEDecoder()
        try:
            for frame in frames:
                for message in decoder.feed(frame):
                    yield message
                await asyncio.sleep(0)
            if self.fail_with is not None:
                raise self.fail_with
            if self.hang:
                await asyncio.Event().wait()
        finally:
            self.closed += 1


def frames(*payloads) -> List[str]:
    return [encode_event(payload, i) for i, payload in enumerate(payloads, start=1)]


def meta(total_days=3, cached=None):
    return MetaEvent(trip_id="trip_1", destination="Lisbon", total_days=total_days, start_date="2026-05-01", cached=cached)


def day(index, cost=50.0):
    return DayEvent(day_index=index, day=make_day(index + 1, f"2026-05-{index + 1:02d}", cost))


def done(total_days=3, verified=True):
    return DoneEvent(
        total_days=total_days,
        total_activities=3 * total_days,
        validation=ValidationMetadata(
            budget_verified=verified, logistics_verified=True, total_iterations=1, refined_days=[]
        ),
    )


def recorder():
    statuses = []

    def on_change(state):
        if not statuses or statuses[-1] != state.status:
            statuses.append(state.status)
    return statuses, on_change


@pytest.mark.asyncio
async def test_full_stream_completes():
    statuses, on_change = recorder()
    consumer = ItineraryStreamConsumer(
        ScriptedConnector(frames(meta(), day(0), day(1), day(2), done())), on_change=on_change
    )

    state = await consumer.start("trip_1")

    assert state.status == StreamStatus.COMPLETE
    assert [d.day for d in state.ordered_days()] == [1, 2, 3]
    assert state.partial is False
    assert state.result.budget_verified
    assert state.message == "Itinerary complete (verified)"
    assert statuses == [StreamStatus.CONNECTING, StreamStatus.STREAMING, StreamStatus.COMPLETE]


@pytest.mark.asyncio
async def test_day_merge_is_idempotent_by_index():
    consumer = ItineraryStreamConsumer(
        ScriptedConnector(frames(meta(), day(0), day(1), day(1, cost=10.0), done(verified=False)))
    )

    state = await consumer.start("trip_1")

    assert sorted(state.days) == [0, 1]
    assert state.days[1].total_cost() == 30.0
    assert state.message == "Itinerary complete (partial)"


@pytest.mark.asyncio
async def test_validation_and_refinement_drive_status():
    validation = ValidationEvent(
        iteration=1, status="REJECTED", budget_verified=False, logistics_verified=True, flagged_days=[2]
    )
    refinement = RefinementEvent(iteration=1, days_to_refine=[2], budget_issues=["Reduce costs on Day 2."])
    statuses, on_change = recorder()
    consumer = ItineraryStreamConsumer(
        ScriptedConnector(frames(meta(), day(0), day(1), day(2), validation, refinement, day(1, 20.0), done())),
        on_change=on_change,
    )

    state = await consumer.start("trip_1")

    assert statuses == [
        StreamStatus.CONNECTING,
        StreamStatus.STREAMING,
        StreamStatus.VALIDATING,
        StreamStatus.REFINING,
        StreamStatus.COMPLETE,
    ]
    assert state.validation.flagged_days == [2]
    assert state.refinement.days_to_refine == [2]
    assert state.days[1].total_cost() == 60.0


@pytest.mark.asyncio
async def test_progress_and_recoverable_errors_are_recorded():
    progress = ProgressEvent(current_day=1, total_days=3, percent=33, message="Generated day 1 of 3")
    failure = ErrorEvent(day_index=1, message="Failed to generate Day 2", recoverable=True)
    consumer = ItineraryStreamConsumer(
        ScriptedConnector(frames(meta(), day(0), progress, failure, done()))
    )

    state = await consumer.start("trip_1")

    assert state.status == StreamStatus.COMPLETE
    assert state.progress.percent == 33
    assert [e.day_index for e in state.errors] == [1]
    assert state.error is None


@pytest.mark.asyncio
async def test_connection_drop_after_some_days_is_partial_complete():
    consumer = ItineraryStreamConsumer(ScriptedConnector(frames(meta(total_days=4), day(0), day(1))))

    state = await consumer.start("trip_1")

    assert state.status == StreamStatus.COMPLETE
    assert state.partial is True
    assert len(state.days) == 2
    assert state.message == "Partial itinerary loaded"
    assert state.progress.current_day == 2
    assert state.progress.total_days == 4
    assert state.progress.percent == 50


@pytest.mark.asyncio
async def test_day_events_update_progress_without_progress_events():
    seen = []

    def on_change(state):
        if state.progress is not None:
            seen.append((state.progress.current_day, state.progress.percent, state.progress.message))

    consumer = ItineraryStreamConsumer(
        ScriptedConnector(frames(meta(total_days=4), day(0), day(1), day(3), done(total_days=4))),
        on_change=on_change,
    )

    state = await consumer.start("trip_1")

    assert seen[:3] == [(1, 25, "Day 1 ready"), (2, 50, "Day 2 ready"), (4, 100, "Day 4 ready")]
    assert state.progress.total_days == 4


@pytest.mark.asyncio
async def test_cached_days_report_loading_progress():
    cached_day = DayEvent(day_index=0, day=make_day(1, "2026-05-01"), cached=True)
    consumer = ItineraryStreamConsumer(ScriptedConnector(frames(meta(total_days=2), cached_day)))

    state = await consumer.start("trip_1")

    assert state.status == StreamStatus.COMPLETE
    assert state.partial is True
    assert state.progress.percent == 50


@pytest.mark.asyncio
async def test_connection_drop_before_any_day_is_recoverable_error():
    consumer = ItineraryStreamConsumer(ScriptedConnector(frames(meta())))

    state = await consumer.start("trip_1")

    assert state.status == StreamStatus.ERROR
    assert state.error.message == CONNECTION_LOST_MESSAGE
    assert state.error.recoverable is True


@pytest.mark.asyncio
async def test_connection_failure_is_treated_as_lost_connection():
    consumer = ItineraryStreamConsumer(
        ScriptedConnector([], fail_with=StreamConnectionError("refused"))
    )

    state = await consumer.start("trip_1")

    assert state.status == StreamStatus.ERROR
    assert state.error.message == CONNECTION_LOST_MESSAGE


@pytest.mark.asyncio
async def test_fatal_error_event_ends_in_error_and_closes():
    connector = ScriptedConnector(frames(meta(), ErrorEvent(message="Day generator unavailable", recoverable=False)))
    consumer = ItineraryStreamConsumer(connector)

    state = await consumer.start("trip_1")

    assert state.status == StreamStatus.ERROR
    assert state.error.recoverable is False
    assert connector.closed == 1


@pytest.mark.asyncio
async def test_malformed_frames_are_skipped():
    bad = ["event: day\ndata: {not json\n\n", "event: weather\ndata: {}\n\n"]
    consumer = ItineraryStreamConsumer(
        ScriptedConnector(frames(meta(), day(0)) + bad + frames(done(total_days=1)))
    )

    state = await consumer.start("trip_1")

    assert state.status == StreamStatus.COMPLETE
    assert list(state.days) == [0]


@pytest.mark.asyncio
async def test_cached_meta_sets_cache_flag():
    consumer = ItineraryStreamConsumer(ScriptedConnector(frames(meta(total_days=1, cached=True), day(0), done(1))))

    state = await consumer.start("trip_1")

    assert state.is_cached is True


@pytest.mark.asyncio
async def test_abort_returns_to_idle_and_never_completes():
    statuses, on_change = recorder()
    first_day = asyncio.Event()

    def watch(state):
        on_change(state)
        if state.days:
            first_day.set()

    connector = ScriptedConnector(frames(meta(), day(0)), hang=True)
    consumer = ItineraryStreamConsumer(connector, on_change=watch)
    running = asyncio.create_task(consumer.start("trip_1"))

    await asyncio.wait_for(first_day.wait(), timeout=1.0)
    await consumer.abort()
    state = await asyncio.wait_for(running, timeout=1.0)

    assert state.status == StreamStatus.IDLE
    assert StreamStatus.COMPLETE not in statuses
    assert connector.closed == 1

    # Events after abort are ignored
    consumer.apply(done())
    assert consumer.state.status == StreamStatus.IDLE


@pytest.mark.asyncio
async def test_retry_only_from_error():
    connector = ScriptedConnector(
        frames(meta()),
        frames(meta(), day(0), day(1), day(2), done()),
    )
    consumer = ItineraryStreamConsumer(connector)

    state = await consumer.start("trip_1")
    assert state.status == StreamStatus.ERROR

    state = await consumer.retry()
    assert state.status == StreamStatus.COMPLETE
    assert connector.connects == 2

    await consumer.retry()
    assert connector.connects == 2


@pytest.mark.asyncio
async def test_in_process_stream_end_to_end(make_service):
    service = make_service(FakeDayGenerator(costs={1: 320.0}, refined_costs={1: 50.0}))
    record = service.store.create(make_params(num_days=3))
    statuses, on_change = recorder()
    consumer = ItineraryStreamConsumer(ChannelConnector(service), on_change=on_change)

    state = await consumer.start(record.trip_id)

    assert state.status == StreamStatus.COMPLETE
    assert sorted(state.days) == [0, 1, 2]
    assert state.result.refined_days == [2]
    assert state.days[1].total_cost() == 150.0
    assert StreamStatus.REFINING in statuses
    assert service.store.get(record.trip_id).status == "complete"


@pytest.mark.asyncio
async def test_events_after_done_are_ignored():
    consumer = ItineraryStreamConsumer(ScriptedConnector(frames(meta(total_days=1), day(0), done(1))))
    state = await consumer.start("trip_1")

    consumer.apply(day(0, cost=10.0))
    consumer.apply(done(1, verified=False))

    assert state.status == StreamStatus.COMPLETE
    assert state.days[0].total_cost() == 150.0
    assert state.message == "Itinerary complete (verified)"


@pytest.mark.asyncio
async def test_unknown_trip_in_process_ends_in_error(make_service):
    consumer = ItineraryStreamConsumer(ChannelConnector(make_service(FakeDayGenerator())))

    state = await consumer.start("trip_missing")

    assert state.status == StreamStatus.ERROR
    assert state.error.message == CONNECTION_LOST_MESSAGE
    assert state.error.recoverable is True


@pytest.mark.asyncio
async def test_unexpected_stream_failure_is_fatal():
    consumer = ItineraryStreamConsumer(
        ScriptedConnector(frames(meta()), fail_with=TripStreamError("Stream service crashed"))
    )

    state = await consumer.start("trip_1")

    assert state.status == StreamStatus.ERROR
    assert state.error.message == "Stream service crashed"
    assert state.error.recoverable is False
