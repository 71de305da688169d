"""
Connectors deliver raw SSE frames of one trip's stream to a consumer.

``ChannelConnector`` runs the stream in-process through the stream service;
``HttpConnector`` reads the SSE endpoint of a running server with httpx.
Both yield ``SSEMessage`` objects and close their transport when the
iteration is closed or cancelled.
"""

from typing import AsyncIterator, Optional, Protocol

import httpx

from .service import ItineraryStreamService
from .transport import SSE_MEDIA_TYPE, SSEDecoder, SSEMessage, encode_event
from ..utils.exceptions import StreamConnectionError, TripNotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class StreamConnector(Protocol):
    def connect(self, trip_id: str) -> AsyncIterator[SSEMessage]:
        ...


class ChannelConnector:
    """In-process connector. Frames go through the same SSE codec as HTTP."""

    def __init__(self, service: ItineraryStreamService):
        self.service = service

    async def connect(self, trip_id: str) -> AsyncIterator[SSEMessage]:
        try:
            channel = await self.service.open_stream(trip_id)
        except TripNotFoundError as e:
            # Same outcome as the HTTP endpoint answering 404
            raise StreamConnectionError(
                f"Stream request failed: {e.message}",
                context={"trip_id": trip_id, "status_code": 404},
            ) from e
        decoder = SSEDecoder()
        event_id = 0
        try:
            async for payload in channel:
                event_id += 1
                for message in decoder.feed(encode_event(payload, event_id)):
                    yield message
        finally:
            channel.close()


def stream_path(trip_id: str) -> str:
    return f"/api/trips/{trip_id}/itinerary/stream"


class HttpConnector:
    """
    Reads the SSE endpoint of a tripstream server.

    Args:
        base_url: Server root, e.g. http://localhost:8000
        client: Optional shared httpx.AsyncClient (not closed by the connector)
        connect_timeout: Seconds allowed to establish the connection
    """

    def __init__(self, base_url: str = "", client: Optional[httpx.AsyncClient] = None, connect_timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.client = client
        self.connect_timeout = connect_timeout

    async def connect(self, trip_id: str) -> AsyncIterator[SSEMessage]:
        client = self.client or httpx.AsyncClient(
            base_url=self.base_url,
            # Reads block for as long as the server keeps the stream open
            timeout=httpx.Timeout(self.connect_timeout, read=None),
        )
        try:
            async with client.stream("GET", stream_path(trip_id), headers={"Accept": SSE_MEDIA_TYPE}) as response:
                if response.status_code != 200:
                    raise StreamConnectionError(
                        f"Stream request failed with HTTP {response.status_code}",
                        context={"trip_id": trip_id, "status_code": response.status_code},
                    )
                decoder = SSEDecoder()
                async for line in response.aiter_lines():
                    message = decoder.feed_line(line)
                    if message is not None:
                        yield message
        except httpx.HTTPError as e:
            logger.warning("stream_http_error", trip_id=trip_id, error=str(e), error_type=type(e).__name__)
            raise StreamConnectionError(f"Stream connection failed: {e}", context={"trip_id": trip_id}) from e
        finally:
            if self.client is None:
                await client.aclose()
