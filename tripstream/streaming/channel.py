"""
Per-session event channel between a stream producer and its reader.

Either side may close the channel. Closing from the reader side is how a
client disconnect reaches the producer: further sends raise
``ChannelClosedError`` and ``wait_closed`` wakes any in-flight race.
"""

import asyncio
from typing import Optional

from ..schemas.events import StreamPayload
from ..utils.exceptions import ChannelClosedError

_CLOSED = object()


class EventChannel:
    """Unbounded FIFO of stream payloads with close semantics."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def send(self, payload: StreamPayload) -> None:
        if self._closed.is_set():
            raise ChannelClosedError("Event channel is closed", context={"event": payload.event})
        self._queue.put_nowait(payload)

    def close(self) -> None:
        """Close the channel. Payloads already queued are still delivered."""
        if self._closed.is_set():
            return
        self._closed.set()
        self._queue.put_nowait(_CLOSED)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def receive(self) -> Optional[StreamPayload]:
        """Next payload in send order, or None once the channel is drained and closed."""
        if self._closed.is_set() and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> StreamPayload:
        payload = await self.receive()
        if payload is None:
            raise StopAsyncIteration
        return payload
