"""Persistence sink abstraction with per-sink throughput control.

Provides:
- ``Sink``       - abstract base class that every concrete sink implements.
- ``SinkConfig`` - per-sink throughput / batching / back-pressure knobs.
- ``SinkRunner`` - internal async helper that buffers readings and alerts
                   and drains them to the sink at the configured rate.

Writes are best-effort: the hub only ever enqueues, so a slow or failing
sink never delays a tick or a broadcast.  Failed batches are logged and
dropped.
"""

from __future__ import annotations

import asyncio
import collections
import contextlib
import logging
from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from incubator_sim.models import Alert, Reading, TelemetryRecord

__all__ = ["Sink", "SinkConfig", "SinkRunner", "split_records"]

logger = logging.getLogger("incubator_sim.sinks")


# -----------------------------------------------------------------------
# Throughput configuration
# -----------------------------------------------------------------------


class SinkConfig(BaseModel):
    """Per-sink throughput / batching knobs.

    Attributes:
        rate_hz:
            How often the runner flushes buffered records to the sink.
            ``None`` means drain continuously (every 50 ms).
        batch_size:
            Maximum records handed to one ``write()`` call.
        max_buffer_size:
            Maximum records held in memory.  When exceeded the
            ``backpressure`` policy kicks in.
        backpressure:
            ``"drop_oldest"`` - discard oldest records when buffer is full.
            ``"drop_newest"`` - discard incoming records when buffer is full.
        retry_count:
            Total ``write()`` attempts per batch.  The default of 1 means
            telemetry is written at most once.
        retry_delay_s:
            Seconds to wait between attempts.
    """

    rate_hz: float | None = Field(default=None, gt=0)
    batch_size: int = Field(default=100, ge=1)
    max_buffer_size: int = Field(default=10_000, ge=1)
    backpressure: str = "drop_oldest"  # drop_oldest | drop_newest
    retry_count: int = Field(default=1, ge=1)
    retry_delay_s: float = Field(default=1.0, ge=0)


def split_records(records: list[TelemetryRecord]) -> tuple[list[Reading], list[Alert]]:
    """Partition a mixed batch into readings and alerts, preserving order."""
    readings = [r for r in records if isinstance(r, Reading)]
    alerts = [r for r in records if isinstance(r, Alert)]
    return readings, alerts


# -----------------------------------------------------------------------
# Sink ABC
# -----------------------------------------------------------------------


class Sink(ABC):
    """Abstract base class for all persistence sinks.

    Concrete sinks must implement ``connect``, ``write``, ``flush`` and
    ``close``.  ``write`` receives a mixed batch of :class:`Reading` and
    :class:`Alert` records; :func:`split_records` separates them.
    """

    def __init__(
        self,
        *,
        rate_hz: float | None = None,
        batch_size: int = 100,
        max_buffer_size: int = 10_000,
        backpressure: str = "drop_oldest",
        retry_count: int = 1,
        retry_delay_s: float = 1.0,
    ) -> None:
        if backpressure not in ("drop_oldest", "drop_newest"):
            raise ValueError(f"Unknown backpressure policy: {backpressure!r}")
        self.sink_config = SinkConfig(
            rate_hz=rate_hz,
            batch_size=batch_size,
            max_buffer_size=max_buffer_size,
            backpressure=backpressure,
            retry_count=max(1, retry_count),
            retry_delay_s=retry_delay_s,
        )

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection / open resources."""

    @abstractmethod
    async def write(self, records: list[TelemetryRecord]) -> None:
        """Write a batch of readings and/or alerts to the destination."""

    @abstractmethod
    async def flush(self) -> None:
        """Flush any internal buffers the sink may hold."""

    @abstractmethod
    async def close(self) -> None:
        """Release resources / close connections."""


# -----------------------------------------------------------------------
# SinkRunner - async buffer + rate limiter (one per registered sink)
# -----------------------------------------------------------------------


class SinkRunner:
    """Buffers incoming records and drains them to a ``Sink`` according
    to its ``SinkConfig`` throughput settings.

    The hub creates one ``SinkRunner`` per ``add_sink()`` call.
    """

    def __init__(self, sink: Sink) -> None:
        self.sink = sink
        self.cfg = sink.sink_config
        self._buffer: collections.deque[TelemetryRecord] = collections.deque(
            maxlen=self.cfg.max_buffer_size if self.cfg.backpressure == "drop_oldest" else None,
        )
        self._drain_task: asyncio.Task[None] | None = None
        self._stopped = False
        self.dropped = 0

    @property
    def name(self) -> str:
        return type(self.sink).__name__

    # -- public interface used by the hub --

    async def start(self) -> None:
        """Connect the sink and start the background drain loop."""
        await self.sink.connect()
        self._stopped = False
        self._drain_task = asyncio.create_task(self._drain_loop(), name=f"drain-{self.name}")

    def enqueue(self, records: list[TelemetryRecord]) -> None:
        """Append records to the internal buffer; never blocks."""
        if self._stopped or not records:
            return

        overflow = len(self._buffer) + len(records) - self.cfg.max_buffer_size
        if overflow > 0:
            if self.cfg.backpressure == "drop_newest":
                space = max(0, self.cfg.max_buffer_size - len(self._buffer))
                self.dropped += len(records) - space
                records = records[:space]
            else:
                # The deque evicts from the left on extend.
                self.dropped += overflow

        self._buffer.extend(records)

    async def stop(self) -> None:
        """Drain remaining records, flush, and close the sink."""
        self._stopped = True
        if self._drain_task and not self._drain_task.done():
            self._drain_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._drain_task
        # Final drain
        await self._flush_buffer()
        try:
            await self.sink.flush()
            await self.sink.close()
        except Exception as exc:
            logger.error("%s failed to close cleanly: %s", self.name, exc)

    # -- internal --

    async def _drain_loop(self) -> None:
        """Background coroutine that drains the buffer at the configured rate."""
        try:
            while not self._stopped:
                interval = 1.0 / self.cfg.rate_hz if self.cfg.rate_hz is not None and self.cfg.rate_hz > 0 else 0.05

                await asyncio.sleep(interval)
                await self._flush_buffer()
        except asyncio.CancelledError:
            pass

    async def _flush_buffer(self) -> None:
        """Take up to ``batch_size`` records from the buffer and write them."""
        while self._buffer:
            batch: list[TelemetryRecord] = []
            count = min(len(self._buffer), self.cfg.batch_size)
            for _ in range(count):
                batch.append(self._buffer.popleft())

            for attempt in range(1, self.cfg.retry_count + 1):
                try:
                    await self.sink.write(batch)
                    break
                except Exception as exc:
                    if attempt < self.cfg.retry_count:
                        logger.warning(
                            "%s write failed (attempt %d/%d): %s - retrying in %.1fs",
                            self.name,
                            attempt,
                            self.cfg.retry_count,
                            exc,
                            self.cfg.retry_delay_s,
                        )
                        await asyncio.sleep(self.cfg.retry_delay_s)
                    else:
                        self.dropped += len(batch)
                        logger.error(
                            "%s write failed after %d attempt(s): %s - dropping %d records",
                            self.name,
                            self.cfg.retry_count,
                            exc,
                            len(batch),
                        )
