"""Incubator Fleet Simulator - generate realistic CO₂-incubator telemetry,
raise threshold alerts, and broadcast both to live subscribers and
pluggable persistence sinks.

Quick start::

    from incubator_sim import BroadcastHub
    from incubator_sim.sinks import ConsoleSink
    from incubator_sim.subscribers import ConsoleSubscriber

    hub = BroadcastHub(tick_interval_s=1.0)
    hub.add_sink(ConsoleSink(rate_hz=0.5))
    hub.run(duration_s=10, subscribers=[ConsoleSubscriber()])
"""

from __future__ import annotations

from incubator_sim.alerts import AlertEvaluator, ThresholdTable
from incubator_sim.config import DeviceSpec, FleetConfig, SimulatorSettings, load_yaml_config
from incubator_sim.device_models import DeviceClass, DeviceState
from incubator_sim.generator import TelemetrySimulator
from incubator_sim.hub import BroadcastHub
from incubator_sim.ledger import AlertLedger
from incubator_sim.models import Alert, CommandResult, HubEvent, Reading, Severity

__all__ = [
    "Alert",
    "AlertEvaluator",
    "AlertLedger",
    "BroadcastHub",
    "CommandResult",
    "DeviceClass",
    "DeviceSpec",
    "DeviceState",
    "FleetConfig",
    "HubEvent",
    "Reading",
    "Severity",
    "SimulatorSettings",
    "TelemetrySimulator",
    "ThresholdTable",
    "load_yaml_config",
]

__version__ = "0.1.0"
