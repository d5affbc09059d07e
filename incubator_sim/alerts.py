"""Threshold evaluation - turns a reading into zero or more alerts.

Each metric has a warning band and a wider critical band.  The critical band
is checked first and is inclusive at its edges; the warning band only fires
for values strictly outside it.  Battery only has lower bounds.

The threshold table is an immutable model.  ``AlertEvaluator.update`` builds
a new table and swaps the reference, so an evaluation that already grabbed
the old table finishes against a consistent snapshot.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from pydantic import BaseModel, model_validator

from incubator_sim.models import Alert, Reading, Severity

__all__ = [
    "AlertEvaluator",
    "Band",
    "BandThresholds",
    "BatteryThresholds",
    "DOOR_OPENED",
    "ThresholdTable",
]

logger = logging.getLogger("incubator_sim.alerts")

DOOR_OPENED = "DOOR_OPENED"


class Band(BaseModel):
    """Closed ``[min, max]`` interval."""

    model_config = {"frozen": True}

    min: float
    max: float

    @model_validator(mode="after")
    def _ordered(self) -> Band:
        if self.min > self.max:
            raise ValueError(f"band min ({self.min}) is greater than max ({self.max})")
        return self


class BandThresholds(BaseModel):
    """Warning band ``min``/``max`` plus an enclosing critical band."""

    model_config = {"frozen": True}

    min: float
    max: float
    critical: Band

    @model_validator(mode="after")
    def _critical_contains_warning(self) -> BandThresholds:
        if self.min > self.max:
            raise ValueError(f"warning min ({self.min}) is greater than max ({self.max})")
        if self.critical.min > self.min or self.critical.max < self.max:
            raise ValueError("critical band must contain the warning band")
        return self

    @property
    def warning(self) -> Band:
        return Band(min=self.min, max=self.max)


class BatteryThresholds(BaseModel):
    """Lower bounds only: ``min`` for the low warning, ``critical`` below it."""

    model_config = {"frozen": True}

    min: float = 20.0
    critical: float = 10.0

    @model_validator(mode="after")
    def _critical_below_min(self) -> BatteryThresholds:
        if self.critical > self.min:
            raise ValueError("battery critical level must not exceed the low-battery level")
        return self


class ThresholdTable(BaseModel):
    """Full threshold table, one entry per metric."""

    model_config = {"frozen": True}

    temperature: BandThresholds = BandThresholds(min=36.5, max=37.5, critical=Band(min=36.0, max=38.0))
    co2: BandThresholds = BandThresholds(min=4.8, max=5.2, critical=Band(min=4.5, max=5.5))
    humidity: BandThresholds = BandThresholds(min=82.0, max=88.0, critical=Band(min=80.0, max=90.0))
    oxygen: BandThresholds = BandThresholds(min=19.5, max=20.5, critical=Band(min=19.0, max=21.0))
    battery: BatteryThresholds = BatteryThresholds()

    def merged(self, partial: dict[str, Any]) -> ThresholdTable:
        """Return a new table with whole metric entries from *partial* applied."""
        unknown = set(partial) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown threshold metric(s): {sorted(unknown)}")
        data = self.model_dump()
        for key, value in partial.items():
            data[key] = value.model_dump() if isinstance(value, BaseModel) else value
        return ThresholdTable.model_validate(data)


# field, type prefix, critical label, warning label, unit, decimals
_BANDED_METRICS: list[tuple[str, str, str, str, str, int]] = [
    ("temperature", "TEMPERATURE", "Critical temperature", "Temperature out of range", "°C", 2),
    ("co2", "CO2", "Critical CO2 level", "CO2 out of range", "%", 2),
    ("humidity", "HUMIDITY", "Critical humidity", "Humidity out of range", "%", 1),
    ("oxygen", "OXYGEN", "Critical oxygen level", "Oxygen out of range", "%", 1),
]


class AlertEvaluator:
    """Stateless evaluator over a replaceable threshold table.

    Parameters:
        thresholds: Initial table (defaults to :class:`ThresholdTable`).
    """

    def __init__(self, thresholds: ThresholdTable | None = None) -> None:
        self._thresholds = thresholds or ThresholdTable()
        self._write_lock = threading.Lock()

    @property
    def thresholds(self) -> ThresholdTable:
        return self._thresholds

    def replace(self, thresholds: ThresholdTable) -> ThresholdTable:
        """Swap in a whole new table."""
        with self._write_lock:
            self._thresholds = thresholds
        logger.info("Threshold table replaced")
        return thresholds

    def update(self, partial: dict[str, Any]) -> ThresholdTable:
        """Apply per-metric overrides; raises ``ValueError`` and keeps the
        current table if the result is invalid."""
        with self._write_lock:
            table = self._thresholds.merged(partial)
            self._thresholds = table
        logger.info("Thresholds updated: %s", sorted(partial))
        return table

    def evaluate(self, reading: Reading, thresholds: ThresholdTable | None = None) -> list[Alert]:
        """Return the alerts raised by *reading* (possibly none)."""
        table = thresholds or self._thresholds
        now = time.time()
        alerts: list[Alert] = []

        for field, prefix, critical_label, warning_label, unit, decimals in _BANDED_METRICS:
            value = getattr(reading, field)
            if value is None:
                continue
            band: BandThresholds = getattr(table, field)
            if value <= band.critical.min or value >= band.critical.max:
                alerts.append(
                    Alert(
                        device_id=reading.device_id,
                        type=f"{prefix}_CRITICAL",
                        message=f"{critical_label}: {value:.{decimals}f}{unit} on {reading.device_id}",
                        severity=Severity.CRITICAL,
                        value=value,
                        threshold=band.critical.model_dump(),
                        timestamp=now,
                    )
                )
            elif value < band.min or value > band.max:
                alerts.append(
                    Alert(
                        device_id=reading.device_id,
                        type=f"{prefix}_WARNING",
                        message=f"{warning_label}: {value:.{decimals}f}{unit} on {reading.device_id}",
                        severity=Severity.WARNING,
                        value=value,
                        threshold=band.warning.model_dump(),
                        timestamp=now,
                    )
                )

        battery = reading.battery
        if battery is not None:
            if battery <= table.battery.critical:
                alerts.append(
                    Alert(
                        device_id=reading.device_id,
                        type="BATTERY_CRITICAL",
                        message=f"Critical battery level: {battery:.1f}% on {reading.device_id}",
                        severity=Severity.CRITICAL,
                        value=battery,
                        threshold={"critical": table.battery.critical},
                        timestamp=now,
                    )
                )
            elif battery < table.battery.min:
                alerts.append(
                    Alert(
                        device_id=reading.device_id,
                        type="BATTERY_LOW",
                        message=f"Low battery: {battery:.1f}% on {reading.device_id}",
                        severity=Severity.WARNING,
                        value=battery,
                        threshold={"min": table.battery.min},
                        timestamp=now,
                    )
                )

        return alerts
