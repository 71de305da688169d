"""At-most-one active stream session per trip."""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

from ..utils.logger import get_logger

logger = get_logger(__name__)


class SessionRegistry:
    """
    Tracks the running producer task of every trip.

    Starting a session for a trip cancels the previous one and waits for it
    to finish before the new task is created.
    """

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    async def start(self, trip_id: str, run: Callable[[], Awaitable]) -> asyncio.Task:
        async with self._lock:
            previous = self._tasks.get(trip_id)
            if previous is not None and not previous.done():
                logger.info("stream_session_superseded", trip_id=trip_id)
                previous.cancel()
                await asyncio.gather(previous, return_exceptions=True)

            task = asyncio.create_task(run())
            self._tasks[trip_id] = task
            task.add_done_callback(lambda done: self._forget(trip_id, done))
            return task

    async def cancel(self, trip_id: str) -> bool:
        """Cancel the active session of a trip. Returns False if none was running."""
        async with self._lock:
            task = self._tasks.get(trip_id)
            if task is None or task.done():
                return False
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            return True

    def active(self, trip_id: str) -> Optional[asyncio.Task]:
        task = self._tasks.get(trip_id)
        if task is None or task.done():
            return None
        return task

    def _forget(self, trip_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(trip_id) is task:
            del self._tasks[trip_id]
