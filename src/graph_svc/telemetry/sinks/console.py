"""Console sink for development/debugging."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass

from ..events import GraphEvent
from .base import TelemetrySink


@dataclass
class ConsoleSink(TelemetrySink):
    """Writes events to stdout or stderr."""
    stream: str = "stdout"  # stdout | stderr
    format: str = "json"    # json | compact
    prefix: str = "[TELEMETRY] "

    async def send(self, events: list[GraphEvent]) -> None:
        out = sys.stdout if self.stream == "stdout" else sys.stderr
        for event in events:
            print(f"{self.prefix}{self._format_event(event)}", file=out)

    def _format_event(self, event: GraphEvent) -> str:
        if self.format == "compact":
            return (
                f"{event.timestamp.isoformat()} "
                f"{event.caller.principal} "
                f"{event.operation.value} "
                f"{event.target} "
                f"{event.outcome.value} "
                f"{event.latency_ms:.1f}ms"
            )
        return json.dumps(event.to_dict(), default=str)
