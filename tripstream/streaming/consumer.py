"""
Consumer-side state machine for an itinerary stream.

    idle -> connecting -> streaming -> (validating <-> refining) -> complete
                              \\____________________________________-> error

Days are merged idempotently by ``dayIndex``. A stream that ends without
``done`` counts as complete (partial) when at least one day arrived and as a
recoverable error otherwise.
"""

import asyncio
from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from .connectors import StreamConnector
from .transport import decode_message
from ..schemas.events import (
    DayEvent,
    DoneEvent,
    ErrorEvent,
    MetaEvent,
    ProgressEvent,
    RefinementEvent,
    StreamPayload,
    ValidationEvent,
)
from ..schemas.trip import ItineraryDay
from ..schemas.validation import ValidationMetadata
from ..utils.exceptions import MalformedEventError, StreamConnectionError, TripStreamError
from ..utils.logger import get_logger

logger = get_logger(__name__)

CONNECTION_LOST_MESSAGE = "Connection lost. Please try again."


class StreamStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    VALIDATING = "validating"
    REFINING = "refining"
    COMPLETE = "complete"
    ERROR = "error"


# Statuses in which incoming events are no longer applied
_CLOSED_STATUSES = (StreamStatus.IDLE, StreamStatus.COMPLETE, StreamStatus.ERROR)


class StreamState(BaseModel):
    """Everything the consumer has learned about the current stream."""
    status: StreamStatus = StreamStatus.IDLE
    trip_id: Optional[str] = None
    meta: Optional[MetaEvent] = None
    days: Dict[int, ItineraryDay] = Field(default_factory=dict, description="Keyed by 0-based day index")
    progress: Optional[ProgressEvent] = None
    message: str = ""
    validation: Optional[ValidationEvent] = None
    refinement: Optional[RefinementEvent] = None
    result: Optional[ValidationMetadata] = None
    errors: List[ErrorEvent] = Field(default_factory=list, description="Recoverable, day-scoped errors")
    error: Optional[ErrorEvent] = None
    is_cached: bool = False
    partial: bool = False

    def ordered_days(self) -> List[ItineraryDay]:
        return [self.days[index] for index in sorted(self.days)]


class ItineraryStreamConsumer:
    """
    Pulls frames from a connector and applies them to a ``StreamState``.

    ``on_change`` is called with the state after every transition.
    """

    def __init__(self, connector: StreamConnector, on_change: Optional[Callable[[StreamState], None]] = None):
        self.connector = connector
        self.on_change = on_change
        self.state = StreamState()
        self._task: Optional[asyncio.Task] = None
        # Bumped by start/abort; pumps from an older generation stop applying events
        self._generation = 0

    async def start(self, trip_id: str) -> StreamState:
        """Open the stream for a trip and consume it until it ends or is aborted."""
        await self._stop_pump()
        self._generation += 1
        self.state = StreamState(status=StreamStatus.CONNECTING, trip_id=trip_id, message="Connecting...")
        self._notify()

        task = asyncio.create_task(self._pump(trip_id, self._generation))
        self._task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if not task.cancelled() and task.exception() is not None:
            raise task.exception()
        return self.state

    async def abort(self) -> None:
        """Close the transport and return to idle. Later events are ignored."""
        self._generation += 1
        await self._stop_pump()
        if self.state.status != StreamStatus.IDLE:
            logger.info("stream_aborted", trip_id=self.state.trip_id, days=len(self.state.days))
            self.state.status = StreamStatus.IDLE
            self._notify()

    async def retry(self) -> StreamState:
        """Start again with the same trip id. Only allowed from the error state."""
        if self.state.status != StreamStatus.ERROR or self.state.trip_id is None:
            logger.warning("stream_retry_ignored", status=self.state.status.value)
            return self.state
        return await self.start(self.state.trip_id)

    async def _stop_pump(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _pump(self, trip_id: str, generation: int) -> None:
        terminal = False
        stream = self.connector.connect(trip_id)
        try:
            async for message in stream:
                if generation != self._generation:
                    return
                try:
                    payload = decode_message(message)
                except MalformedEventError as e:
                    logger.warning(
                        "malformed_event_skipped",
                        event_type=e.event_type,
                        error=e.message,
                        validation_errors=e.validation_errors,
                    )
                    continue
                self.apply(payload)
                if payload.terminal:
                    terminal = True
                    break
        except StreamConnectionError as e:
            logger.warning("stream_connection_failed", trip_id=trip_id, error=e.message)
        except TripStreamError as e:
            logger.error("stream_failed", trip_id=trip_id, error=e.message, error_type=type(e).__name__)
            if generation == self._generation:
                self.apply(ErrorEvent(message=e.message, recoverable=False))
        finally:
            await stream.aclose()

        if not terminal and generation == self._generation:
            self._connection_lost()

    def apply(self, event: StreamPayload) -> None:
        """Apply one decoded event to the state."""
        if self.state.status in _CLOSED_STATUSES:
            logger.debug("event_ignored", event_type=event.event, status=self.state.status.value)
            return

        if isinstance(event, MetaEvent):
            self.state.meta = event
            self.state.is_cached = bool(event.cached)
            self.state.status = StreamStatus.STREAMING
            self.state.message = f"Planning {event.total_days} days in {event.destination}"
        elif isinstance(event, DayEvent):
            self.state.days[event.day_index] = event.day
            if self.state.status == StreamStatus.CONNECTING:
                self.state.status = StreamStatus.STREAMING
            number = event.day_index + 1
            message = f"Loading Day {number}..." if event.cached else f"Day {number} ready"
            self._set_progress(number, message)
            self.state.message = message
        elif isinstance(event, ProgressEvent):
            self.state.progress = event
            self.state.message = event.message
        elif isinstance(event, ValidationEvent):
            self.state.validation = event
            self.state.status = StreamStatus.VALIDATING
            self.state.message = f"Validating itinerary... ({event.status})"
        elif isinstance(event, RefinementEvent):
            self.state.refinement = event
            self.state.status = StreamStatus.REFINING
            plural = "s" if len(event.days_to_refine) > 1 else ""
            self.state.message = f"Refining Day{plural} {', '.join(str(d) for d in event.days_to_refine)}"
        elif isinstance(event, DoneEvent):
            self.state.result = event.validation
            self.state.status = StreamStatus.COMPLETE
            if event.validation is None:
                self.state.message = "Itinerary complete"
            elif event.validation.budget_verified and event.validation.logistics_verified:
                self.state.message = "Itinerary complete (verified)"
            else:
                self.state.message = "Itinerary complete (partial)"
        elif isinstance(event, ErrorEvent):
            if event.recoverable:
                self.state.errors.append(event)
            else:
                self.state.error = event
                self.state.status = StreamStatus.ERROR
                self.state.message = event.message
        self._notify()

    def _connection_lost(self) -> None:
        if self.state.status in _CLOSED_STATUSES:
            return
        if self.state.days:
            logger.info("stream_ended_partial", trip_id=self.state.trip_id, days=len(self.state.days))
            self.state.status = StreamStatus.COMPLETE
            self.state.partial = True
            self.state.message = "Partial itinerary loaded"
            self._set_progress(len(self.state.days), self.state.message)
        else:
            logger.warning("stream_connection_lost", trip_id=self.state.trip_id)
            self.state.status = StreamStatus.ERROR
            self.state.error = ErrorEvent(message=CONNECTION_LOST_MESSAGE, recoverable=True)
            self.state.message = CONNECTION_LOST_MESSAGE
        self._notify()

    def _set_progress(self, current_day: int, message: str) -> None:
        """Progress derived from received days, against the total announced by ``meta``."""
        if self.state.meta is not None:
            total = self.state.meta.total_days
        elif self.state.progress is not None:
            total = self.state.progress.total_days
        else:
            total = current_day
        total = max(total, current_day, 1)
        self.state.progress = ProgressEvent(
            current_day=current_day,
            total_days=total,
            percent=round(current_day / total * 100),
            message=message,
        )

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.state)
