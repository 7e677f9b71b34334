"""Telemetry sinks."""

from .base import TelemetrySink
from .console import ConsoleSink

__all__ = [
    "TelemetrySink",
    "ConsoleSink",
]
