"""Batching telemetry worker."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from .events import GraphEvent


logger = logging.getLogger(__name__)


@dataclass
class TelemetryBatcher:
    """
    Collects events and hands them to a sink in batches.

    Flushes when the batch is full or when the timer loop finds events
    older than the flush interval.
    """
    batch_size: int = 1000
    flush_interval_seconds: float = 1.0

    # Sink function: receives list of events
    sink: Callable[[list[GraphEvent]], Awaitable[None]] | None = None

    _buffer: list[GraphEvent] = field(default_factory=list, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _last_flush: float = field(default_factory=time.time, init=False)
    _stats: dict = field(default_factory=dict, init=False)
    _running: bool = field(default=False, init=False)

    def __post_init__(self):
        self._stats = {
            "batches_sent": 0,
            "events_sent": 0,
            "flush_errors": 0,
        }

    async def add(self, event: GraphEvent) -> None:
        """Add an event to the batch."""
        async with self._lock:
            self._buffer.append(event)
            if len(self._buffer) >= self.batch_size:
                await self._flush_locked()

    async def flush(self) -> None:
        """Force flush the current batch."""
        async with self._lock:
            await self._flush_locked()

    async def _flush_locked(self) -> None:
        if not self._buffer:
            return

        batch = self._buffer.copy()
        self._buffer.clear()
        self._last_flush = time.time()

        if self.sink is None:
            logger.warning(f"No telemetry sink configured, discarding {len(batch)} events")
            return

        try:
            await self.sink(batch)
        except Exception as e:
            # Dropped: telemetry never backs up graph operations
            logger.error(f"Failed to flush telemetry batch: {e}")
            self._stats["flush_errors"] += 1
            return
        self._stats["batches_sent"] += 1
        self._stats["events_sent"] += len(batch)

    async def timer_loop(self) -> None:
        """Background loop that flushes on interval."""
        self._running = True
        logger.info(f"Telemetry batcher timer started (interval={self.flush_interval_seconds}s)")

        while self._running:
            try:
                await asyncio.sleep(self.flush_interval_seconds)
                async with self._lock:
                    if self._buffer and time.time() - self._last_flush >= self.flush_interval_seconds:
                        await self._flush_locked()
            except asyncio.CancelledError:
                logger.info("Telemetry batcher timer cancelled")
                break

        await self.flush()

    async def stop(self) -> None:
        """Stop the batcher and flush remaining events."""
        self._running = False
        await self.flush()
        logger.info(f"Telemetry batcher stopped. Stats: {self._stats}")

    @property
    def buffer_size(self) -> int:
        return len(self._buffer)

    @property
    def stats(self) -> dict:
        return {
            **self._stats,
            "buffer_size": self.buffer_size,
        }


def create_batched_consumer(batcher: TelemetryBatcher) -> Callable[[GraphEvent], Awaitable[None]]:
    """
    Create an emitter consumer that feeds a batcher.

    Usage:
        batcher = TelemetryBatcher(sink=my_sink.send)
        emitter.add_consumer(create_batched_consumer(batcher))
    """
    async def consumer(event: GraphEvent) -> None:
        await batcher.add(event)

    return consumer
