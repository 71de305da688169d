"""
Stream service: wires the trip store, cache, registry and producer together
for one trip. Used by the HTTP route and the in-process connector.
"""

from typing import Optional

from ..agents.director import ValidationDirector
from ..agents.generator import DayGenerator
from ..memory.cache import DayCache
from ..memory.trip_store import TripStore
from ..utils.config import Settings, settings as default_settings
from ..utils.logger import get_logger
from .channel import EventChannel
from .producer import StreamProducer
from .sessions import SessionRegistry

logger = get_logger(__name__)


class ItineraryStreamService:
    """Starts stream sessions for stored trips."""

    def __init__(
        self,
        generator: DayGenerator,
        store: TripStore,
        cache: DayCache,
        registry: Optional[SessionRegistry] = None,
        director: Optional[ValidationDirector] = None,
        config: Optional[Settings] = None,
    ):
        self.generator = generator
        self.store = store
        self.cache = cache
        self.registry = registry or SessionRegistry()
        self.config = config or default_settings
        self.director = director or ValidationDirector(self.config)

    async def open_stream(self, trip_id: str) -> EventChannel:
        """
        Start a new session for the trip and return its event channel.

        Any session already running for the trip is cancelled first.

        Raises:
            TripNotFoundError: If the trip id is unknown
        """
        record = self.store.get(trip_id)
        channel = EventChannel()
        producer = StreamProducer(
            trip_id=trip_id,
            params=record.params,
            channel=channel,
            generator=self.generator,
            cache=self.cache,
            store=self.store,
            director=self.director,
            config=self.config,
        )
        await self.registry.start(trip_id, producer.run)
        logger.debug("stream_opened", trip_id=trip_id, request_id=producer.request_id)
        return channel
