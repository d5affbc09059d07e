"""Configuration loader for the fleet YAML format.

Parses YAML files with the following top-level sections::

    simulator:   # tick cadence, probabilities, capacities, seed, ...
    devices:     # the fleet (defaults to the six-device demo fleet)
    alerts:      # ledger capacity and threshold overrides
    sinks:       # list of persistence sink configs

Example:

.. code-block:: yaml

    simulator:
      tick_interval_s: 5.0
      anomaly_probability: 0.05
      seed: 42

    devices:
      - id: CO-STD-001
        device_class: Standard
      - id: CO-RES-001
        device_class: Research
        name: Lab 3 research incubator

    alerts:
      ledger_capacity: 100
      thresholds:
        temperature: {min: 36.5, max: 37.5, critical: {min: 36.0, max: 38.0}}

    sinks:
      - type: console
        rate_hz: 0.5
      - type: database
        connection_string: sqlite+aiosqlite:///cultureon.db
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from incubator_sim.alerts import ThresholdTable
from incubator_sim.device_models import DEFAULT_FLEET, DeviceClass

__all__ = ["DeviceSpec", "FleetConfig", "SimulatorSettings", "load_yaml_config"]

logger = logging.getLogger("incubator_sim.config")


class SimulatorSettings(BaseModel):
    """Knobs of the telemetry state machines.

    Attributes:
        tick_interval_s: Seconds between two ticks of the driver.
        offline_probability: Chance per tick that an online device drops out.
        recovery_probability: Chance per tick that an offline device returns.
        anomaly_probability: Chance per reading of an injected anomaly.
        battery_degradation_rate: Fraction of ``max_battery`` lost per reading.
        door_recovery_steps: Ticks a device stays "recovering" after a door
            opening.
        history_capacity: Readings retained per device.
        seed: Seed for the simulator's private random source.
    """

    tick_interval_s: float = Field(default=5.0, gt=0)
    offline_probability: float = Field(default=0.001, ge=0, le=1)
    recovery_probability: float = Field(default=0.1, ge=0, le=1)
    anomaly_probability: float = Field(default=0.05, ge=0, le=1)
    battery_degradation_rate: float = Field(default=0.001, ge=0)
    door_recovery_steps: int = Field(default=5, ge=0)
    history_capacity: int = Field(default=100, ge=1)
    seed: int | None = None


class DeviceSpec(BaseModel):
    """One device of the fleet."""

    id: str
    device_class: DeviceClass = DeviceClass.STANDARD
    name: str | None = None


def _default_devices() -> list[DeviceSpec]:
    return [DeviceSpec(id=device_id, device_class=cls) for device_id, cls in DEFAULT_FLEET]


class FleetConfig(BaseModel):
    """Parsed representation of the full YAML configuration.

    Attributes:
        simulator: State-machine settings.
        devices: Fleet definition.
        thresholds: Alert threshold table.
        ledger_capacity: Alerts kept in memory.
        snapshot_history: Readings per device included in snapshots.
        sink_configs: Raw dicts passed to the sink factory.
        duration_s: Optional run duration (seconds).
        log_level: Logging level string.
    """

    simulator: SimulatorSettings = Field(default_factory=SimulatorSettings)
    devices: list[DeviceSpec] = Field(default_factory=_default_devices)
    thresholds: ThresholdTable = Field(default_factory=ThresholdTable)
    ledger_capacity: int = Field(default=100, ge=1)
    snapshot_history: int = Field(default=20, ge=0)
    sink_configs: list[dict[str, Any]] = Field(default_factory=list)
    duration_s: float | None = None
    log_level: str = "INFO"


def load_yaml_config(path: str | Path) -> FleetConfig:
    """Load and validate a YAML configuration file.

    Returns a :class:`FleetConfig` ready to be passed to
    :meth:`BroadcastHub.from_config`.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    # --- simulator section ---
    sim_section = dict(raw.get("simulator") or {})
    duration_s = sim_section.pop("duration_s", None)
    log_level = sim_section.pop("log_level", "INFO")
    snapshot_history = sim_section.pop("snapshot_history", 20)
    settings = SimulatorSettings.model_validate(sim_section)

    # --- devices section ---
    device_dicts = raw.get("devices")
    devices = _parse_devices(device_dicts) if device_dicts else _default_devices()

    # --- alerts section ---
    alerts_section = raw.get("alerts") or {}
    thresholds = ThresholdTable().merged(alerts_section.get("thresholds") or {})
    ledger_capacity = int(alerts_section.get("ledger_capacity", 100))

    # --- sinks section ---
    sink_configs = raw.get("sinks") or []

    config = FleetConfig(
        simulator=settings,
        devices=devices,
        thresholds=thresholds,
        ledger_capacity=ledger_capacity,
        snapshot_history=int(snapshot_history),
        sink_configs=sink_configs,
        duration_s=float(duration_s) if duration_s is not None else None,
        log_level=str(log_level).upper(),
    )

    logger.info(
        "Loaded config: %d devices, %d sinks, tick every %.1fs",
        len(config.devices),
        len(config.sink_configs),
        config.simulator.tick_interval_s,
    )
    return config


def _parse_devices(device_dicts: list[dict[str, Any]]) -> list[DeviceSpec]:
    """Convert raw YAML device dicts into ``DeviceSpec`` instances."""
    devices: list[DeviceSpec] = []
    seen: set[str] = set()
    for d in device_dicts:
        d = dict(d)  # copy
        # Accept "type" as an alias for device_class
        raw_class = d.pop("device_class", d.pop("type", DeviceClass.STANDARD.value))
        try:
            device_class = DeviceClass(str(raw_class).strip().capitalize())
        except ValueError:
            logger.warning("Unknown device class '%s' - falling back to 'Standard'", raw_class)
            device_class = DeviceClass.STANDARD

        device_id = str(d.pop("id"))
        if device_id in seen:
            raise ValueError(f"Duplicate device id in config: {device_id}")
        seen.add(device_id)
        devices.append(DeviceSpec(id=device_id, device_class=device_class, name=d.pop("name", None)))
    return devices
