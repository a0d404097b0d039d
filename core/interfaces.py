"""
Core interfaces for the poller platform.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator

from .models import Event


class Codec(ABC):
    """Turns a raw response body into decoded records.

    Decoding is lazy: the returned iterator is finite, single pass and
    not restartable.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name for this codec."""
        pass

    @abstractmethod
    def decode(self, body: bytes) -> Iterator[Dict[str, Any]]:
        """Yield one string-keyed record at a time."""
        pass


class Sink(ABC):
    """Abstract base class for event sinks.

    The poller hands every materialized event to ``handle`` in decode order.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this sink."""
        pass

    @abstractmethod
    async def handle(self, event: Event) -> None:
        """Handle an event."""
        pass

    async def close(self) -> None:
        """Release any resources held by the sink."""
        pass

    async def __aenter__(self) -> "Sink":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
