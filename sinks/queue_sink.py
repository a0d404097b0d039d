"""
Queue sink - hands events to a host pipeline through an asyncio queue.
"""

import asyncio
from typing import Optional

from core.interfaces import Sink
from core.models import Event


class QueueSink(Sink):
    """Puts every event on an :class:`asyncio.Queue`."""

    name = "QueueSink"

    def __init__(self, queue: Optional[asyncio.Queue] = None, maxsize: int = 0):
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue(maxsize=maxsize)

    async def handle(self, event: Event) -> None:
        await self.queue.put(event)

    def drain(self) -> list:
        """Remove and return everything currently queued."""
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events
