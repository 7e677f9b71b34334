"""Telemetry system - non-blocking graph operation events."""

from .events import CallerIdentity, EventOutcome, GraphEvent, Operation
from .emitter import TelemetryEmitter
from .batcher import TelemetryBatcher, create_batched_consumer

__all__ = [
    "CallerIdentity",
    "EventOutcome",
    "GraphEvent",
    "Operation",
    "TelemetryEmitter",
    "TelemetryBatcher",
    "create_batched_consumer",
]
