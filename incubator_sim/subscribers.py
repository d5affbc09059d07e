"""Subscriber handles for the broadcast hub.

A subscriber is anything the hub can ``send`` an event to and ``close``.
Transport layers (a socket server, an SSE endpoint, ...) usually wrap a
:class:`QueueSubscriber` and forward whatever they pull off its queue.

Provides:
- ``Subscriber``         - abstract base class.
- ``QueueSubscriber``    - bounded asyncio queue, drops the oldest event
                           when the consumer falls behind.
- ``CallbackSubscriber`` - delegates to a plain or async callable.
- ``ConsoleSubscriber``  - prints events, used by the CLI.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import sys
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from typing import IO, Any

from incubator_sim.models import HubEvent

__all__ = [
    "ALERTS_CLEARED",
    "ALERT_TRIGGERED",
    "BATCH",
    "DEVICE_STATUS",
    "INITIAL_DATA",
    "SENSOR_DATA",
    "THRESHOLDS_UPDATED",
    "CallbackSubscriber",
    "ConsoleSubscriber",
    "QueueSubscriber",
    "Subscriber",
]

logger = logging.getLogger("incubator_sim.subscribers")

_ids = itertools.count(1)

# Event names shared with transports
INITIAL_DATA = "initial-data"
BATCH = "sensor-data-batch"
SENSOR_DATA = "sensor-data"
DEVICE_STATUS = "device-status"
ALERT_TRIGGERED = "alert-triggered"
ALERTS_CLEARED = "alerts-cleared"
THRESHOLDS_UPDATED = "thresholds-updated"


class Subscriber(ABC):
    """Abstract base class for all subscribers."""

    def __init__(self, name: str | None = None) -> None:
        self.id = next(_ids)
        self.name = name or f"{type(self).__name__}-{self.id}"
        self.closed = False

    @abstractmethod
    async def send(self, event: HubEvent) -> None:
        """Deliver one event.  Raising marks the subscriber as broken."""

    async def close(self) -> None:
        """Release resources; called once when the hub drops the subscriber."""
        self.closed = True

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class QueueSubscriber(Subscriber):
    """Buffers events in an ``asyncio.Queue`` for a transport to consume.

    Parameters:
        maxsize: Queue bound.  When full, the oldest event is discarded so
            a slow consumer never blocks the hub.
    """

    def __init__(self, maxsize: int = 1000, name: str | None = None) -> None:
        super().__init__(name)
        self.queue: asyncio.Queue[HubEvent | None] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    async def send(self, event: HubEvent) -> None:
        if self.closed:
            return
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
            if self.dropped % 100 == 1:
                logger.warning("%s is falling behind - %d events dropped", self.name, self.dropped)
        self.queue.put_nowait(event)

    async def get(self) -> HubEvent | None:
        """Next event, or ``None`` once the subscriber has been closed."""
        return await self.queue.get()

    async def close(self) -> None:
        if self.closed:
            return
        await super().close()
        if self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(None)  # sentinel for consumers

    def __aiter__(self) -> AsyncIterator[HubEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[HubEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class CallbackSubscriber(Subscriber):
    """Wraps a user-supplied function ``(event: HubEvent) -> None``.

    Sync callables run inline on the event loop, so they should be quick.
    """

    def __init__(self, callback: Callable[[HubEvent], Any], name: str | None = None) -> None:
        super().__init__(name)
        self._callback = callback
        self._is_async = inspect.iscoroutinefunction(callback)

    async def send(self, event: HubEvent) -> None:
        if self._is_async:
            await self._callback(event)
        else:
            self._callback(event)


class ConsoleSubscriber(Subscriber):
    """Writes events to the console (stdout by default).

    Parameters:
        fmt: ``"text"`` (one line per reading / alert) or ``"json"``
             (one JSON object per event).
        stream: Writable file-like object.
    """

    def __init__(self, *, fmt: str = "text", stream: IO[str] | None = None, name: str | None = None) -> None:
        super().__init__(name)
        self._fmt = fmt
        self._stream = stream or sys.stdout

    async def send(self, event: HubEvent) -> None:
        if self._fmt == "json":
            self._stream.write(event.to_json() + "\n")
        else:
            for line in _format_text(event):
                self._stream.write(line + "\n")
        self._stream.flush()


def _format_text(event: HubEvent) -> list[str]:
    data = event.data
    if event.event == BATCH:
        return [_format_reading(r) for r in data]
    if event.event == SENSOR_DATA:
        return [_format_reading(data)]
    if event.event == ALERT_TRIGGERED:
        return [f"!! [{data['severity']:<8s}] {data['type']:<22s} {data['message']}"]
    if event.event == DEVICE_STATUS:
        return [f"** {data['device_id']} is now {data['status']}"]
    if event.event == INITIAL_DATA:
        return [f"== fleet of {len(data['devices'])} devices"]
    return [f"-- {event.event}: {data}"]


def _format_reading(r: dict[str, Any]) -> str:
    oxygen = f" O2={r['oxygen']:5.2f}%" if r.get("oxygen") is not None else ""
    anomaly = f" ({r['anomaly']})" if r.get("anomaly") else ""
    return (
        f"[{r['device_id']:<12s}] T={r['temperature']:6.2f}°C CO2={r['co2']:5.2f}% "
        f"RH={r['humidity']:5.1f}%{oxygen} BAT={r['battery']:5.1f}%{anomaly}"
    )
