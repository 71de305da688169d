"""
Stream producer: runs one generation session for one trip.

Event order per session:

    meta, day(cached)*, (day, progress | error)*,
    (validation, (refinement, day*, validation)*)?, done | error(fatal)

Every generator and Director call is raced against channel closure, so a
disconnected client stops the session at its next suspension point.
"""

import asyncio
import time
import uuid
from typing import Awaitable, Dict, List, Optional, Set

from ..agents.director import ValidationDirector
from ..agents.generator import DayGenerator, DayRequest
from ..agents.graph import run_refinement_loop
from ..memory.cache import DayCache
from ..memory.trip_store import TripStore
from ..schemas.events import DayEvent, DoneEvent, ErrorEvent, MetaEvent, ProgressEvent, StreamPayload
from ..schemas.trip import ItineraryDay, StreamSession, TripParameters
from ..schemas.validation import RefinementRequest, ValidationMetadata, ValidationReport
from ..tools.utils import activity_keys, dedupe_activities
from ..utils.config import Settings, settings as default_settings
from ..utils.exceptions import (
    ChannelClosedError,
    GenerationBudgetExceeded,
    GenerationTimeoutError,
    GeneratorUnavailableError,
)
from ..utils.logger import bind_stream_context, clear_stream_context, get_logger
from .channel import EventChannel

logger = get_logger(__name__)


class StreamProducer:
    """
    Produces the ordered event sequence of one session onto a channel.

    Collaborators are injected; the producer owns no global state. It also
    acts as the session object of the refinement loop (emit, review,
    regenerate).
    """

    def __init__(
        self,
        trip_id: str,
        params: TripParameters,
        channel: EventChannel,
        generator: DayGenerator,
        cache: DayCache,
        store: TripStore,
        director: Optional[ValidationDirector] = None,
        config: Optional[Settings] = None,
        request_id: Optional[str] = None,
    ):
        self.trip_id = trip_id
        self.params = params
        self.channel = channel
        self.generator = generator
        self.cache = cache
        self.store = store
        self.config = config or default_settings
        self.director = director or ValidationDirector(self.config)
        self.request_id = request_id or uuid.uuid4().hex[:12]

        self.session: Optional[StreamSession] = None
        self.days: Dict[int, ItineraryDay] = {}
        self.cached_days: Set[int] = set()
        self.generated_days: Set[int] = set()

        # Session metrics
        self.calls_used = 0
        self.recoverable_errors = 0
        self.events_emitted = 0
        self.first_day_at: Optional[float] = None
        self._generator_down = False

    @property
    def total_days(self) -> int:
        return self.params.day_count

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> str:
        """
        Run the session to its end and close the channel.

        Returns:
            Final status: complete, failed, disconnected or cancelled
        """
        started = time.monotonic()
        bind_stream_context(self.trip_id, self.request_id)
        status = "cancelled"
        try:
            status = await self._run()
        except ChannelClosedError:
            status = "disconnected"
            logger.info("stream_consumer_disconnected")
        except Exception as e:
            status = "failed"
            logger.exception("stream_session_crashed", error=str(e), error_type=type(e).__name__)
            await self._fail("Itinerary generation failed unexpectedly")
        finally:
            self.channel.close()
            self._finish(status, started)
            clear_stream_context()
        return status

    async def _run(self) -> str:
        total = self.total_days
        available = self._available_days(total)
        resumed_from = _prefix_length(available)

        self.session = StreamSession(
            trip_id=self.trip_id,
            request_id=self.request_id,
            total_days=total,
            start_date=self.params.start_date.isoformat(),
            destination=self.params.destination,
            cached=len(available) == total,
            resumed_from=resumed_from if 0 < resumed_from < total else None,
        )
        self.store.set_status(self.trip_id, "generating")
        logger.info(
            "stream_session_started",
            destination=self.params.destination,
            total_days=total,
            cached_days=len(available),
            resumed_from=self.session.resumed_from,
        )

        await self.emit(MetaEvent(
            trip_id=self.trip_id,
            destination=self.session.destination,
            total_days=total,
            start_date=self.session.start_date,
            cached=True if self.session.cached else None,
            resumed_from=self.session.resumed_from,
        ))

        for index in sorted(available):
            day = available[index]
            self.days[index] = day
            self.cached_days.add(index)
            self.store.save_day(self.trip_id, index, day)
            await self.emit(DayEvent(day_index=index, day=day, cached=True))

        if self.session.cached:
            await self._done(validation=None)
            return "complete"

        pending = [index for index in range(total) if index not in available]
        try:
            await self._generation_pass(pending)
        except GeneratorUnavailableError as e:
            logger.error("day_generator_unavailable", error=e.message)
            await self._fail(f"Day generator unavailable: {e.message}")
            return "failed"

        if not self.days:
            await self._fail("No days could be generated. Please try again.")
            return "failed"

        validation = None
        if self.config.enable_validation:
            validation = await self._validate_and_refine()

        await self._done(validation)
        return "complete"

    def _available_days(self, total: int) -> Dict[int, ItineraryDay]:
        """Fresh cache entries plus the resumable prefix of a prior run."""
        available = self.cache.fresh_days(self.trip_id, total)
        record = self.store.get(self.trip_id)
        for index, day in record.contiguous_days().items():
            if index < total:
                available.setdefault(index, day)
        return available

    async def _done(self, validation: Optional[ValidationMetadata]) -> None:
        total_activities = sum(len(day.activities) for day in self.days.values())
        await self.emit(DoneEvent(
            total_days=self.total_days,
            total_activities=total_activities,
            validation=validation,
        ))

    async def _fail(self, message: str) -> None:
        self.store.set_status(self.trip_id, "error", error=message)
        try:
            await self.emit(ErrorEvent(message=message, recoverable=False))
        except ChannelClosedError:
            logger.info("fatal_error_not_delivered", message=message)

    def _finish(self, status: str, started: float) -> None:
        if status == "complete":
            self.store.set_status(self.trip_id, "complete")
        elif status in ("disconnected", "cancelled"):
            self.store.set_status(self.trip_id, "idle")

        first_day_ms = None
        if self.first_day_at is not None:
            first_day_ms = round((self.first_day_at - started) * 1000)
        logger.info(
            "stream_summary",
            status=status,
            total_days=self.total_days,
            generated_days=len(self.generated_days),
            cached_days=len(self.cached_days),
            recoverable_errors=self.recoverable_errors,
            generator_calls=self.calls_used,
            events_emitted=self.events_emitted,
            time_to_first_day_ms=first_day_ms,
            total_ms=round((time.monotonic() - started) * 1000),
        )

    # ------------------------------------------------------------------
    # Initial generation pass
    # ------------------------------------------------------------------

    async def _generation_pass(self, pending: List[int]) -> None:
        if self.config.generation_concurrency > 1 and len(pending) > 1:
            await self._generate_concurrently(pending)
            return

        for index in pending:
            previous = [self.days[i].summary() for i in sorted(self.days) if i < index]
            request = DayRequest(self.params, index, previous)
            day = await self._attempt_day(index, self._generate(request))
            if day is not None:
                await self._accept_day(index, day)
                await self._progress(index)

    async def _generate_concurrently(self, pending: List[int]) -> None:
        """Generate up to ``generation_concurrency`` days at once, emitting in index order."""
        semaphore = asyncio.Semaphore(self.config.generation_concurrency)
        context = [self.days[i].summary() for i in sorted(self.days)]

        async def worker(index: int) -> ItineraryDay:
            async with semaphore:
                return await self._generate(DayRequest(self.params, index, context))

        tasks = {index: asyncio.create_task(worker(index)) for index in pending}
        try:
            for index in pending:
                day = await self._attempt_day(index, tasks[index])
                if day is not None:
                    await self._accept_day(index, day)
                    await self._progress(index)
        finally:
            for task in tasks.values():
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)

    async def _attempt_day(self, index: int, work: Awaitable[ItineraryDay]) -> Optional[ItineraryDay]:
        """
        Await one day; day-scoped failures become a recoverable ``error`` event.

        Raises:
            GeneratorUnavailableError: Fatal for the session
            ChannelClosedError: The consumer went away
        """
        try:
            return await work
        except (GeneratorUnavailableError, ChannelClosedError):
            raise
        except GenerationBudgetExceeded as e:
            logger.warning("generation_budget_exhausted", day_index=index, limit=e.limit)
            message = f"Generation budget exhausted before Day {index + 1}"
        except GenerationTimeoutError:
            logger.warning("day_generation_timeout", day_index=index, timeout=self.config.day_generation_timeout)
            message = f"Day {index + 1} timed out. Please try again."
        except Exception as e:
            logger.warning("day_generation_failed", day_index=index, error=str(e), error_type=type(e).__name__)
            message = f"Failed to generate Day {index + 1}"

        self.recoverable_errors += 1
        await self.emit(ErrorEvent(day_index=index, message=message, recoverable=True))
        return None

    async def _generate(self, request: DayRequest) -> ItineraryDay:
        self._reserve_call()
        try:
            day = await self._guarded(self.generator.generate_day(request), self.config.day_generation_timeout)
        except asyncio.TimeoutError as e:
            raise GenerationTimeoutError(
                f"Day {request.day_number} generation timed out", day_index=request.day_index
            ) from e
        return _normalize(day, request)

    def _reserve_call(self) -> None:
        if self.calls_used >= self.config.max_generator_calls:
            raise GenerationBudgetExceeded(
                f"Generator call budget of {self.config.max_generator_calls} exhausted",
                limit=self.config.max_generator_calls,
            )
        self.calls_used += 1

    async def _accept_day(self, index: int, day: ItineraryDay) -> ItineraryDay:
        """Dedupe, persist and cache a generated day, then emit it."""
        seen = activity_keys(d for i, d in self.days.items() if i < index)
        day, _ = dedupe_activities(day, seen)

        self.days[index] = day
        self.generated_days.add(index)
        self.store.save_day(self.trip_id, index, day)
        self.cache.put(self.trip_id, index, day)
        if self.first_day_at is None:
            self.first_day_at = time.monotonic()

        await self.emit(DayEvent(day_index=index, day=day))
        return day

    async def _progress(self, index: int) -> None:
        total = self.total_days
        await self.emit(ProgressEvent(
            current_day=index + 1,
            total_days=total,
            percent=round((index + 1) / total * 100),
            message=f"Generated day {index + 1} of {total}",
        ))

    async def _guarded(self, work: Awaitable, timeout: Optional[float] = None):
        """
        Await ``work`` bounded by ``timeout``, abandoning it if the channel closes.

        Raises:
            asyncio.TimeoutError: The work did not finish in time
            ChannelClosedError: The channel closed first
        """
        task = asyncio.ensure_future(asyncio.wait_for(work, timeout))
        closed = asyncio.ensure_future(self.channel.wait_closed())
        try:
            await asyncio.wait({task, closed}, return_when=asyncio.FIRST_COMPLETED)
            if task.done():
                return task.result()
            raise ChannelClosedError("Stream consumer disconnected")
        finally:
            for pending in (task, closed):
                if not pending.done():
                    pending.cancel()
            await asyncio.gather(task, closed, return_exceptions=True)

    # ------------------------------------------------------------------
    # Validation / refinement
    # ------------------------------------------------------------------

    async def _validate_and_refine(self) -> ValidationMetadata:
        locked = [index + 1 for index in self.cached_days]
        final = await run_refinement_loop(
            self,
            self.trip_id,
            self.params,
            {index + 1: day for index, day in self.days.items()},
            locked_days=locked,
            max_iterations=self.config.max_refinement_iterations,
        )

        report: ValidationReport = final["report"]
        logs = [line for r in final["reports"] for line in r.logs] + final["logs"]
        logger.info(
            "validation_finished",
            outcome=final["next_step"],
            iterations=len(final["reports"]),
            refined_days=final["refined_days"],
            verdict=report.status,
        )
        return ValidationMetadata(
            budget_verified=report.budget_verified,
            logistics_verified=report.logistics_verified,
            total_iterations=len(final["reports"]),
            refined_days=final["refined_days"],
            logs=logs,
        )

    async def emit(self, payload: StreamPayload) -> None:
        await self.channel.send(payload)
        self.events_emitted += 1

    async def review(self, days: List[ItineraryDay], iteration: int, locked_days) -> ValidationReport:
        return await self._guarded(self.director.review(days, self.params, iteration, locked_days))

    def can_generate(self) -> bool:
        return not self._generator_down and self.calls_used < self.config.max_generator_calls

    async def regenerate(
        self,
        day_number: int,
        request: RefinementRequest,
        days: Dict[int, ItineraryDay],
    ) -> Optional[ItineraryDay]:
        """Regenerate one flagged day; None leaves the previous version in place."""
        index = day_number - 1
        previous = [days[n].summary() for n in sorted(days) if n < day_number]
        day_request = DayRequest(self.params, index, previous, refinement=request, current=days.get(day_number))
        try:
            day = await self._generate(day_request)
        except ChannelClosedError:
            raise
        except GenerationBudgetExceeded as e:
            logger.warning("refinement_budget_exhausted", day=day_number, limit=e.limit)
            return None
        except GeneratorUnavailableError as e:
            self._generator_down = True
            logger.error("day_generator_unavailable", day=day_number, error=e.message)
            return None
        except Exception as e:
            logger.warning("day_refinement_failed", day=day_number, error=str(e), error_type=type(e).__name__)
            return None
        return await self._accept_day(index, day)


def _normalize(day: ItineraryDay, request: DayRequest) -> ItineraryDay:
    """Pin the day number and date to the slot that was requested."""
    if day.day == request.day_number and day.date == request.date:
        return day
    return day.model_copy(update={"day": request.day_number, "date": request.date})


def _prefix_length(days: Dict[int, ItineraryDay]) -> int:
    length = 0
    while length in days:
        length += 1
    return length
