"""
Itinerary streaming: producer, SSE transport, session registry and consumer.
"""

from .channel import EventChannel
from .connectors import ChannelConnector, HttpConnector
from .consumer import ItineraryStreamConsumer, StreamState, StreamStatus
from .producer import StreamProducer
from .service import ItineraryStreamService
from .sessions import SessionRegistry
from .transport import SSEDecoder, SSEMessage, decode_message, encode_event, sse_frames

__all__ = [
    "EventChannel",
    "StreamProducer",
    "SessionRegistry",
    "ItineraryStreamService",
    "SSEDecoder",
    "SSEMessage",
    "encode_event",
    "decode_message",
    "sse_frames",
    "ChannelConnector",
    "HttpConnector",
    "ItineraryStreamConsumer",
    "StreamState",
    "StreamStatus",
]
