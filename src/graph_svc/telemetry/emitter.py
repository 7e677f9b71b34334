"""Non-blocking telemetry emitter."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from .events import GraphEvent


logger = logging.getLogger(__name__)


@dataclass
class TelemetryEmitter:
    """
    Non-blocking telemetry event emitter.

    Events are placed in a bounded asyncio queue and delivered to consumers
    by a background loop, so graph operations never wait on telemetry.
    Events emitted before ``start`` or past the queue bound are dropped
    and counted.
    """
    max_queue_size: int = 10000

    _queue: asyncio.Queue | None = field(default=None, init=False)
    _consumers: list[Callable[[GraphEvent], None]] = field(default_factory=list, init=False)
    _stats: dict = field(default_factory=dict, init=False)

    def __post_init__(self):
        self._stats = {
            "emitted": 0,
            "dropped": 0,
            "errors": 0,
        }

    async def start(self) -> None:
        """Initialize the emitter (call on startup)."""
        self._queue = asyncio.Queue(maxsize=self.max_queue_size)
        logger.info(f"Telemetry emitter started (max_queue={self.max_queue_size})")

    async def stop(self) -> None:
        """Stop the emitter and drain remaining events."""
        if self._queue:
            while not self._queue.empty():
                try:
                    event = self._queue.get_nowait()
                except asyncio.QueueEmpty:
                    break
                await self._deliver(event)
        logger.info(f"Telemetry emitter stopped. Stats: {self._stats}")

    def add_consumer(self, consumer: Callable[[GraphEvent], None]) -> None:
        """Add a consumer; called from the processing loop, not the hot path."""
        self._consumers.append(consumer)

    def emit(self, event: GraphEvent) -> bool:
        """
        Emit an event (non-blocking).

        Returns True if queued, False if dropped.
        """
        if self._queue is None:
            self._stats["dropped"] += 1
            return False

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._stats["dropped"] += 1
            return False
        self._stats["emitted"] += 1
        return True

    async def process_loop(self) -> None:
        """
        Main processing loop - runs continuously.

        Call this as a background task.
        """
        if self._queue is None:
            raise RuntimeError("Emitter not started")

        logger.info("Telemetry processing loop started")

        while True:
            try:
                event = await self._queue.get()
                await self._deliver(event)
                self._queue.task_done()
            except asyncio.CancelledError:
                logger.info("Telemetry processing loop cancelled")
                break

    async def _deliver(self, event: GraphEvent) -> None:
        """Deliver event to all consumers."""
        for consumer in self._consumers:
            try:
                if asyncio.iscoroutinefunction(consumer):
                    await consumer(event)
                else:
                    consumer(event)
            except Exception as e:
                logger.error(f"Telemetry consumer error: {e}")
                self._stats["errors"] += 1

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize() if self._queue else 0

    @property
    def stats(self) -> dict:
        return {
            **self._stats,
            "queue_depth": self.queue_depth,
            "consumers": len(self._consumers),
        }
