"""Base sink interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..events import GraphEvent


class TelemetrySink(ABC):
    """Receives batches of events and delivers them somewhere."""

    @abstractmethod
    async def send(self, events: list[GraphEvent]) -> None:
        """Send a batch of events to the sink."""
        ...

    async def start(self) -> None:
        """Initialize the sink (called on startup)."""
        pass

    async def stop(self) -> None:
        """Clean up the sink (called on shutdown)."""
        pass
