"""Console sink - prints persisted readings and alerts to stdout.

Useful for debugging, demos, and verifying the pipeline is working.
"""

from __future__ import annotations

import sys
from typing import IO

from incubator_sim.models import Alert, TelemetryRecord
from incubator_sim.sinks.base import Sink

__all__ = ["ConsoleSink"]


class ConsoleSink(Sink):
    """Writes records to the console (stdout by default).

    Parameters:
        fmt: Output format - ``"text"`` (human-readable) or ``"json"``
             (one JSON object per record).
        stream: Writable file-like object (defaults to ``sys.stdout``).
        rate_hz: Throughput - how often to flush batches.
        **kwargs: Forwarded to :class:`Sink`.
    """

    def __init__(
        self,
        *,
        fmt: str = "text",
        stream: IO[str] | None = None,
        rate_hz: float | None = None,
        batch_size: int = 100,
        **kwargs,
    ) -> None:
        super().__init__(rate_hz=rate_hz, batch_size=batch_size, **kwargs)
        self._fmt = fmt
        self._stream = stream or sys.stdout

    async def connect(self) -> None:
        """No-op - stdout is always available."""

    async def write(self, records: list[TelemetryRecord]) -> None:
        for rec in records:
            if self._fmt == "json":
                self._stream.write(rec.to_json() + "\n")
            elif isinstance(rec, Alert):
                self._stream.write(f"[alert/{rec.device_id}] {rec.severity.value:<8s} {rec.type}: {rec.message}\n")
            else:
                self._stream.write(
                    f"[reading/{rec.device_id}] "
                    f"T={rec.temperature:.2f} CO2={rec.co2:.2f} RH={rec.humidity:.1f} "
                    f"BAT={rec.battery:.1f}"
                    f"{f' O2={rec.oxygen:.2f}' if rec.oxygen is not None else ''}"
                    f"{f' ({rec.anomaly.value})' if rec.anomaly else ''}\n"
                )
        self._stream.flush()

    async def flush(self) -> None:
        self._stream.flush()

    async def close(self) -> None:
        """No-op - we do not own stdout."""
