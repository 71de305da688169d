"""
Server-Sent Events codec.

Encoding turns payloads into ``text/event-stream`` frames; ``SSEDecoder``
parses them back incrementally (comments, multi-line ``data:``, ``id`` and
``retry`` fields), and ``decode_message`` maps a frame onto its payload class.
"""

import asyncio
import json
import time
from typing import AsyncIterator, List, Optional

from pydantic import BaseModel, ValidationError

from .channel import EventChannel
from ..schemas.events import EVENT_TYPES, StreamEvent, StreamPayload
from ..utils.exceptions import MalformedEventError

SSE_MEDIA_TYPE = "text/event-stream"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class SSEMessage(BaseModel):
    """One dispatched SSE frame before payload decoding."""
    event: str = "message"
    data: str = ""
    id: Optional[str] = None
    retry: Optional[int] = None


def encode_event(payload: StreamPayload, event_id: Optional[int] = None) -> str:
    """Encode a payload as one SSE frame terminated by a blank line."""
    lines = []
    if event_id is not None:
        lines.append(f"id: evt-{event_id}")
    lines.append(f"event: {payload.event}")
    data = json.dumps(payload.to_wire(), separators=(",", ":"), ensure_ascii=False)
    # JSON never contains raw newlines, but keep the frame valid if it ever does
    for line in data.split("\n"):
        lines.append(f"data: {line}")
    return "\n".join(lines) + "\n\n"


def encode_comment(text: str) -> str:
    return f": {text}\n\n"


def heartbeat() -> str:
    return encode_comment(f"ping {int(time.time())}")


class SSEDecoder:
    """
    Incremental SSE parser.

    Feed it raw chunks with ``feed`` or already-split lines with
    ``feed_line``; complete frames come out as ``SSEMessage`` objects.
    """

    def __init__(self):
        self.last_event_id: Optional[str] = None
        self.retry: Optional[int] = None
        self._buffer = ""
        self._event: Optional[str] = None
        self._data: List[str] = []

    def feed(self, chunk: str) -> List[SSEMessage]:
        self._buffer += chunk
        messages = []
        while True:
            newline = self._buffer.find("\n")
            if newline < 0:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            message = self.feed_line(line)
            if message is not None:
                messages.append(message)
        return messages

    def feed_line(self, line: str) -> Optional[SSEMessage]:
        line = line.rstrip("\r\n")
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self.retry = int(value)
        return None

    def _dispatch(self) -> Optional[SSEMessage]:
        event, data = self._event, self._data
        self._event, self._data = None, []
        # A frame without data lines is not dispatched
        if not data:
            return None
        return SSEMessage(
            event=event or "message",
            data="\n".join(data),
            id=self.last_event_id,
            retry=self.retry,
        )


def decode_message(message: SSEMessage) -> StreamEvent:
    """
    Map a decoded frame onto its payload class.

    Raises:
        MalformedEventError: Unknown event type, invalid JSON or a payload
            that does not match the event's schema
    """
    payload_cls = EVENT_TYPES.get(message.event)
    if payload_cls is None:
        raise MalformedEventError(f"Unknown event type: {message.event}", event_type=message.event)

    try:
        data = json.loads(message.data)
    except json.JSONDecodeError as e:
        raise MalformedEventError(
            f"Invalid JSON in {message.event} event: {e}", event_type=message.event
        ) from e

    try:
        return payload_cls.model_validate(data)
    except ValidationError as e:
        raise MalformedEventError(
            f"Invalid {message.event} payload",
            event_type=message.event,
            validation_errors=e.errors(include_url=False),
        ) from e


async def sse_frames(channel: EventChannel, heartbeat_interval: float) -> AsyncIterator[str]:
    """
    Yield SSE frames for every payload on the channel until it closes.

    A heartbeat comment is yielded after each ``heartbeat_interval`` seconds
    without an event.
    """
    event_id = 0
    while True:
        try:
            payload = await asyncio.wait_for(channel.receive(), timeout=heartbeat_interval)
        except asyncio.TimeoutError:
            yield heartbeat()
            continue
        if payload is None:
            return
        event_id += 1
        yield encode_event(payload, event_id)
