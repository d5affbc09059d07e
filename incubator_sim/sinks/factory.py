"""Build persistence sinks from the ``sinks:`` section of a fleet config.

Each entry names a registered ``type``.  The throughput keys of
:class:`SinkConfig` are validated up front and the remaining keys must
match the sink's own constructor, so a typo fails at startup instead of
silently falling back to a default::

    sinks:
      - type: file
        path: ./output
        format: csv
        rate_hz: 1.0
      - type: callback
        on_alerts: mylab.paging:notify   # resolved by import path
"""

from __future__ import annotations

import importlib
import inspect
import logging
from typing import Any

from pydantic import ValidationError

from incubator_sim.sinks.base import Sink, SinkConfig

__all__ = ["available_sinks", "create_sink", "register_sink"]

logger = logging.getLogger("incubator_sim.sinks.factory")

# type name -> (module_path, class_name); optional extras import lazily
_SINK_REGISTRY: dict[str, tuple[str, str]] = {
    "console": ("incubator_sim.sinks.console", "ConsoleSink"),
    "callback": ("incubator_sim.sinks.callback", "CallbackSink"),
    "file": ("incubator_sim.sinks.file", "FileSink"),
    "database": ("incubator_sim.sinks.database", "DatabaseSink"),
    "webhook": ("incubator_sim.sinks.webhook", "WebhookSink"),
}

_THROUGHPUT_KEYS = frozenset(SinkConfig.model_fields)


def available_sinks() -> dict[str, str]:
    """Registered type names mapped to their sink class names."""
    return {name: class_name for name, (_module_path, class_name) in _SINK_REGISTRY.items()}


def _load_class(sink_type: str) -> type[Sink]:
    module_path, class_name = _SINK_REGISTRY[sink_type]
    return getattr(importlib.import_module(module_path), class_name)


def _constructor_keys(cls: type[Sink]) -> set[str]:
    params = inspect.signature(cls.__init__).parameters.values()
    return {
        p.name
        for p in params
        if p.name != "self" and p.kind not in (inspect.Parameter.VAR_KEYWORD, inspect.Parameter.VAR_POSITIONAL)
    }


def create_sink(config: dict[str, Any]) -> Sink:
    """Create an unconnected sink from one config entry.

    Raises:
        ValueError: missing or unknown ``type``, unknown keys, or invalid
            throughput settings.
        ImportError: the sink's optional extra is not installed.
    """
    config = dict(config)
    sink_type = config.pop("type", None)
    if sink_type is None:
        raise ValueError("Sink config must include a 'type' key")

    sink_type = str(sink_type).lower().strip()
    if sink_type not in _SINK_REGISTRY:
        raise ValueError(f"Unknown sink type '{sink_type}'.  Available: {sorted(_SINK_REGISTRY)}")

    throughput = {k: v for k, v in config.items() if k in _THROUGHPUT_KEYS}
    try:
        SinkConfig.model_validate(throughput)
    except ValidationError as err:
        raise ValueError(f"Invalid throughput settings for '{sink_type}' sink: {err}") from err

    cls = _load_class(sink_type)
    unknown = set(config) - _THROUGHPUT_KEYS - _constructor_keys(cls)
    if unknown:
        raise ValueError(f"Unknown option(s) for '{sink_type}' sink: {sorted(unknown)}")

    logger.debug("Creating %s with config: %s", cls.__name__, config)
    return cls(**config)


def register_sink(name: str, module_path: str, class_name: str) -> None:
    """Make a custom sink available to ``create_sink`` under *name*.

    Example::

        register_sink("lims", "mylab.sinks", "LimsSink")
    """
    _SINK_REGISTRY[name.lower().strip()] = (module_path, class_name)
