"""Common data models for the Incubator Fleet Simulator.

Defines the ``Reading`` and ``Alert`` records that flow from the simulator
through the alert evaluator to subscribers and sinks, plus the small value
types used on the hub's event and command surface.
"""

from __future__ import annotations

import time
import uuid
from enum import StrEnum
from typing import Any, Union

from pydantic import BaseModel, Field

__all__ = [
    "Alert",
    "AnomalyKind",
    "CommandResult",
    "DeviceStatus",
    "HubEvent",
    "Reading",
    "Severity",
    "StatusChange",
    "TelemetryRecord",
    "new_alert_id",
]


class DeviceStatus(StrEnum):
    """Operational status of a device."""

    ONLINE = "online"
    OFFLINE = "offline"


class Severity(StrEnum):
    """Alert severity levels."""

    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"


class AnomalyKind(StrEnum):
    """Tags attached to readings carrying an injected perturbation."""

    TEMPERATURE_SPIKE = "temperature_spike"
    CO2_DRIFT = "co2_drift"
    HUMIDITY_FLUCTUATION = "humidity_fluctuation"
    DOOR_OPENED = "door_opened"


class Reading(BaseModel):
    """A single telemetry sample produced for one device.

    Attributes:
        device_id: Identifier of the producing device, e.g. ``"CO-STD-001"``.
        temperature: Chamber temperature in °C.
        co2: CO₂ concentration in %.
        humidity: Relative humidity in %.
        battery: Remaining battery in %.
        oxygen: O₂ concentration in % (Research-class devices only).
        anomaly: Tag of the injected anomaly, if any.
        timestamp: Unix epoch seconds when the reading was generated.
    """

    device_id: str
    temperature: float
    co2: float
    humidity: float
    battery: float
    oxygen: float | None = None
    anomaly: AnomalyKind | None = None
    timestamp: float = Field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        """Return a plain ``dict`` representation (JSON-safe types)."""
        return self.model_dump(mode="json")

    def to_json(self) -> str:
        """Return a compact JSON string."""
        return self.model_dump_json()


def new_alert_id() -> str:
    """Return a fresh alert id of the form ``alert-<ms>-<9 chars>``."""
    return f"alert-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class Alert(BaseModel):
    """An alert raised for a reading that left its threshold band.

    ``threshold`` holds the bounds used for the decision, e.g.
    ``{"min": 36.0, "max": 38.0}`` or ``{"critical": 10.0}``.
    Only ``acknowledged`` / ``acknowledged_at`` change after creation.
    """

    id: str = Field(default_factory=new_alert_id)
    device_id: str
    type: str
    message: str
    severity: Severity
    value: float
    threshold: dict[str, float] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)
    acknowledged: bool = False
    acknowledged_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a plain ``dict`` representation (JSON-safe types)."""
        return self.model_dump(mode="json")

    def to_json(self) -> str:
        """Return a compact JSON string."""
        return self.model_dump_json()


# Everything a persistence sink may receive.
TelemetryRecord = Union[Reading, Alert]


class StatusChange(BaseModel):
    """An online/offline transition of one device."""

    device_id: str
    status: DeviceStatus


class CommandResult(BaseModel):
    """Structured outcome of a directed command."""

    success: bool
    message: str


class HubEvent(BaseModel):
    """A named event delivered to subscribers.

    ``event`` is one of the transport event names (``"sensor-data-batch"``,
    ``"alert-triggered"``, ...); ``data`` is already JSON-safe.
    """

    event: str
    data: Any = None
    timestamp: float = Field(default_factory=time.time)

    def to_json(self) -> str:
        return self.model_dump_json()
