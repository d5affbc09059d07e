"""Callback sink - hands persisted records to plain Python callables.

Use one callable for the mixed stream, or route readings and alerts to
separate handlers::

    hub.add_sink(lambda records: print(len(records)))
    hub.add_sink(CallbackSink(on_alerts=page_on_call, rate_hz=1.0))

Handlers may also be given as ``"package.module:function"`` strings so
YAML configs can reference them.
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
from collections.abc import Callable
from typing import Any

from incubator_sim.models import Alert, Reading, TelemetryRecord
from incubator_sim.sinks.base import Sink, split_records

__all__ = ["CallbackSink", "resolve_callable"]

Handler = Callable[[list[Any]], Any]


def resolve_callable(target: Handler | str) -> Handler:
    """Return *target*, importing it first when given as ``"module:attr"``."""
    if not isinstance(target, str):
        return target
    module_path, sep, attr = target.partition(":")
    if not sep or not attr:
        raise ValueError(f"Callback path must look like 'package.module:function', got {target!r}")
    func = getattr(importlib.import_module(module_path), attr)
    if not callable(func):
        raise ValueError(f"{target!r} is not callable")
    return func


class CallbackSink(Sink):
    """Wraps user-supplied functions as a sink.

    Parameters:
        callback: Receives every flushed batch as ``list[Reading | Alert]``.
        on_readings: Receives only the readings of each batch.
        on_alerts: Receives only the alerts of each batch.
        rate_hz / batch_size / **kwargs: Forwarded to :class:`Sink`.

    At least one handler is required.  Routed handlers are skipped when
    their half of the batch is empty.  Coroutine functions are awaited;
    plain functions run in the default executor.
    """

    def __init__(
        self,
        callback: Handler | str | None = None,
        *,
        on_readings: Handler | str | None = None,
        on_alerts: Handler | str | None = None,
        rate_hz: float | None = None,
        batch_size: int = 100,
        **kwargs: Any,
    ) -> None:
        if callback is None and on_readings is None and on_alerts is None:
            raise ValueError("CallbackSink needs callback, on_readings or on_alerts")
        super().__init__(rate_hz=rate_hz, batch_size=batch_size, **kwargs)
        self._callback = resolve_callable(callback) if callback is not None else None
        self._on_readings = resolve_callable(on_readings) if on_readings is not None else None
        self._on_alerts = resolve_callable(on_alerts) if on_alerts is not None else None

    async def connect(self) -> None:
        """No-op."""

    async def write(self, records: list[TelemetryRecord]) -> None:
        if self._callback is not None:
            await self._call(self._callback, records)
        if self._on_readings is None and self._on_alerts is None:
            return
        readings, alerts = split_records(records)
        if self._on_readings is not None and readings:
            await self._call(self._on_readings, readings)
        if self._on_alerts is not None and alerts:
            await self._call(self._on_alerts, alerts)

    async def flush(self) -> None:
        """No-op."""

    async def close(self) -> None:
        """No-op."""

    @staticmethod
    async def _call(handler: Handler, batch: list[Reading] | list[Alert] | list[TelemetryRecord]) -> None:
        if inspect.iscoroutinefunction(handler):
            await handler(batch)
        else:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, handler, batch)
