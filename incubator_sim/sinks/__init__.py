"""Persistence sinks for readings and alerts.

Built-in sinks import eagerly.  Sinks that need an optional extra
(``FileSink``, ``DatabaseSink``, ``WebhookSink``) and any sink added with
:func:`register_sink` resolve on first attribute access::

    from incubator_sim.sinks import ConsoleSink, FileSink
"""

from __future__ import annotations

import importlib
from typing import Any

from incubator_sim.sinks.base import Sink, SinkConfig, SinkRunner, split_records
from incubator_sim.sinks.callback import CallbackSink
from incubator_sim.sinks.console import ConsoleSink
from incubator_sim.sinks.factory import _SINK_REGISTRY, available_sinks, create_sink, register_sink

__all__ = [
    "CallbackSink",
    "ConsoleSink",
    "Sink",
    "SinkConfig",
    "SinkRunner",
    "available_sinks",
    "create_sink",
    "register_sink",
    "split_records",
]


def __getattr__(name: str) -> Any:
    for module_path, class_name in _SINK_REGISTRY.values():
        if class_name == name:
            return getattr(importlib.import_module(module_path), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
