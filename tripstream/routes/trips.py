"""
API routes for trip creation, lookup and the itinerary event stream
"""
import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from ..agents.generator import LLMDayGenerator
from ..memory.cache import day_cache
from ..memory.trip_store import trip_store
from ..schemas import CreateTripRequest
from ..streaming.service import ItineraryStreamService
from ..streaming.transport import SSE_HEADERS, SSE_MEDIA_TYPE, sse_frames
from ..streaming.connectors import stream_path
from ..utils.exceptions import TripNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["trips"])


@lru_cache(maxsize=1)
def get_stream_service() -> ItineraryStreamService:
    """Default service wired to the LLM generator and the global store and cache."""
    return ItineraryStreamService(
        generator=LLMDayGenerator(),
        store=trip_store,
        cache=day_cache,
    )


@router.post("/trips", status_code=status.HTTP_201_CREATED)
async def create_trip(request: CreateTripRequest, service: ItineraryStreamService = Depends(get_stream_service)):
    """
    Create a new trip.

    Generation starts when a client opens the returned stream URL.
    """
    record = service.store.create(request.to_parameters())
    logger.info(f"Created trip {record.trip_id} for {record.params.destination}")
    return {
        "tripId": record.trip_id,
        "status": record.status,
        "streamUrl": stream_path(record.trip_id),
    }


@router.get("/trips/{trip_id}")
async def get_trip(trip_id: str, service: ItineraryStreamService = Depends(get_stream_service)):
    """
    Get trip details, generation status and the days generated so far.
    """
    try:
        record = service.store.get(trip_id)
    except TripNotFoundError:
        raise HTTPException(status_code=404, detail=f"Trip {trip_id} not found")
    return record.to_wire()


@router.get("/trips/{trip_id}/itinerary/stream")
async def stream_itinerary(trip_id: str, service: ItineraryStreamService = Depends(get_stream_service)):
    """
    Stream the itinerary of a trip as Server-Sent Events.

    Opening the stream starts a new generation session and cancels any
    session already running for the trip.
    """
    try:
        channel = await service.open_stream(trip_id)
    except TripNotFoundError:
        raise HTTPException(status_code=404, detail=f"Trip {trip_id} not found")

    async def frames():
        try:
            async for frame in sse_frames(channel, service.config.heartbeat_interval):
                yield frame
        finally:
            # Client went away or the stream ended; either way the producer stops
            channel.close()

    return StreamingResponse(frames(), media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS)
