"""Telemetry simulator - produces one reading per device per tick.

Owns the device registry and the two per-device state machines:

* online/offline: an online device drops out with ``offline_probability``;
  an offline device comes back with ``recovery_probability``.
* anomaly/recovery: readings occasionally carry an injected anomaly, and a
  simulated door opening arms a recovery countdown that the hub advances
  once per tick.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Callable, Iterator
from typing import Any

from incubator_sim.config import DeviceSpec, SimulatorSettings
from incubator_sim.device_models import (
    Baseline,
    DeviceClass,
    DeviceState,
    Metric,
    clamp,
)
from incubator_sim.models import AnomalyKind, CommandResult, DeviceStatus, Reading, StatusChange

__all__ = ["TelemetrySimulator"]

logger = logging.getLogger("incubator_sim.generator")

# (cumulative probability, kind, metric, mean, stdev)
_ANOMALIES: list[tuple[float, AnomalyKind, Metric, float, float]] = [
    (0.5, AnomalyKind.TEMPERATURE_SPIKE, Metric.TEMPERATURE, 2.0, 0.5),
    (0.8, AnomalyKind.CO2_DRIFT, Metric.CO2, 1.0, 0.3),
    (1.0, AnomalyKind.HUMIDITY_FLUCTUATION, Metric.HUMIDITY, 5.0, 2.0),
]


class TelemetrySimulator:
    """Creates and manages :class:`DeviceState` instances and produces
    :class:`Reading` objects for them.

    Parameters:
        devices:
            Fleet definition.  ``None`` starts with an empty registry.
        settings:
            State-machine probabilities and capacities.
        rng:
            Random source; defaults to ``random.Random(settings.seed)``.
        on_status_change:
            Called with a :class:`StatusChange` whenever a device goes
            online or offline.
    """

    def __init__(
        self,
        devices: list[DeviceSpec] | None = None,
        *,
        settings: SimulatorSettings | None = None,
        rng: random.Random | None = None,
        on_status_change: Callable[[StatusChange], None] | None = None,
    ) -> None:
        self.settings = settings or SimulatorSettings()
        self.rng = rng or random.Random(self.settings.seed)
        self.on_status_change = on_status_change
        # Insertion order is the tick order.
        self._devices: dict[str, DeviceState] = {}

        for spec in devices or []:
            self.add_device(spec.id, spec.device_class, name=spec.name)

        logger.info("TelemetrySimulator initialised with %d devices", self.device_count)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def add_device(
        self,
        device_id: str,
        device_class: str | DeviceClass = DeviceClass.STANDARD,
        *,
        name: str | None = None,
    ) -> DeviceState:
        if device_id in self._devices:
            raise ValueError(f"Device already registered: {device_id}")
        device = DeviceState(
            device_id,
            device_class,
            name=name,
            history_capacity=self.settings.history_capacity,
        )
        self._devices[device_id] = device
        return device

    def get_device(self, device_id: str) -> DeviceState | None:
        return self._devices.get(device_id)

    @property
    def devices(self) -> list[DeviceState]:
        return list(self._devices.values())

    @property
    def device_count(self) -> int:
        return len(self._devices)

    def __iter__(self) -> Iterator[DeviceState]:
        return iter(self.devices)

    def snapshot(self, history: int = 20) -> list[dict[str, Any]]:
        """Current readings plus the last *history* readings of every device."""
        return [
            {
                "id": device.id,
                "name": device.name,
                "type": device.device_class.value,
                "status": device.status.value,
                "current_readings": device.latest_reading().to_dict(),
                "recent_history": [r.to_dict() for r in device.recent_history(history)],
            }
            for device in self.devices
        ]

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def gaussian(self, mean: float = 0.0, stdev: float = 1.0) -> float:
        """Normal deviate via the Box-Muller transform of two uniforms."""
        u = 1.0 - self.rng.random()  # (0, 1], keeps log() finite
        v = self.rng.random()
        z = math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)
        return z * stdev + mean

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate(self, device: DeviceState) -> Reading | None:
        """Advance *device* by one tick; returns ``None`` while it is offline."""
        with device.lock:
            if device.status == DeviceStatus.ONLINE:
                if self.rng.random() < self.settings.offline_probability:
                    self._set_status(device, DeviceStatus.OFFLINE)
                    return None
            elif self.rng.random() < self.settings.recovery_probability:
                self._set_status(device, DeviceStatus.ONLINE)

            if device.status == DeviceStatus.OFFLINE:
                return None

            profile = device.profile
            baseline = device.baseline
            values: dict[Metric, float] = {
                metric: self.gaussian(getattr(baseline, metric.value), profile.precision[metric] / 3)
                for metric in profile.metrics
            }

            drain = self.settings.battery_degradation_rate * profile.max_battery
            baseline.battery = max(0.0, baseline.battery - drain)
            values[Metric.BATTERY] = baseline.battery

            anomaly: AnomalyKind | None = None
            if self.rng.random() < self.settings.anomaly_probability:
                roll = self.rng.random()
                for cutoff, kind, metric, mean, stdev in _ANOMALIES:
                    if roll < cutoff:
                        values[metric] += self.gaussian(mean, stdev)
                        anomaly = kind
                        break
                logger.debug("Injected %s on %s", anomaly, device.id)

            reading = self._build_reading(device, values, anomaly)
            device.add_reading(reading)
            return reading

    def tick(self) -> list[Reading]:
        """Generate one reading for every device (offline devices are skipped)."""
        readings: list[Reading] = []
        for device in self.devices:
            device.advance_recovery()
            try:
                reading = self.generate(device)
            except Exception:
                logger.exception("Generation failed for %s", device.id)
                continue
            if reading is not None:
                readings.append(reading)
        return readings

    def simulate_door_opening(self, device_id: str) -> Reading | None:
        """Synthesize a door-opening reading for an online device.

        Temperature and CO₂ jump up, humidity drops, and the device is put
        into recovery for ``door_recovery_steps`` ticks.  Returns ``None``
        for unknown or offline devices and leaves them untouched.
        """
        device = self.get_device(device_id)
        if device is None:
            return None
        with device.lock:
            if device.status == DeviceStatus.OFFLINE:
                return None

            baseline = device.baseline
            values: dict[Metric, float] = {
                Metric.TEMPERATURE: baseline.temperature + self.gaussian(3.0, 0.5),
                Metric.CO2: baseline.co2 + self.gaussian(0.5, 0.1),
                Metric.HUMIDITY: baseline.humidity - self.gaussian(5.0, 1.0),
                Metric.BATTERY: baseline.battery,
            }
            if baseline.oxygen is not None:
                values[Metric.OXYGEN] = baseline.oxygen + self.gaussian(0.3, 0.1)

            reading = self._build_reading(device, values, AnomalyKind.DOOR_OPENED)
            device.add_reading(reading)
            device.arm_recovery(self.settings.door_recovery_steps)

        logger.info("Door opening simulated on %s", device_id)
        return reading

    # ------------------------------------------------------------------
    # Directed commands
    # ------------------------------------------------------------------

    def reset_battery(self, device_id: str) -> CommandResult:
        device = self.get_device(device_id)
        if device is None:
            return _not_found()
        with device.lock:
            device.baseline.battery = device.profile.battery
        return CommandResult(success=True, message="Battery reset")

    def toggle_status(self, device_id: str) -> CommandResult:
        device = self.get_device(device_id)
        if device is None:
            return _not_found()
        with device.lock:
            new_status = DeviceStatus.OFFLINE if device.online else DeviceStatus.ONLINE
            self._set_status(device, new_status)
        return CommandResult(success=True, message=f"Device {new_status.value}")

    def calibrate(self, device_id: str) -> CommandResult:
        """Restore the class-profile baseline, discarding battery drain."""
        device = self.get_device(device_id)
        if device is None:
            return _not_found()
        with device.lock:
            device.baseline = Baseline.from_profile(device.profile)
        return CommandResult(success=True, message="Device calibrated")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _set_status(self, device: DeviceState, status: DeviceStatus) -> None:
        device.status = status
        logger.info("Device %s is now %s", device.id, status.value)
        if self.on_status_change is not None:
            self.on_status_change(StatusChange(device_id=device.id, status=status))

    @staticmethod
    def _build_reading(
        device: DeviceState,
        values: dict[Metric, float],
        anomaly: AnomalyKind | None,
    ) -> Reading:
        clamped = {metric.value: clamp(metric, value) for metric, value in values.items()}
        return Reading(device_id=device.id, anomaly=anomaly, **clamped)


def _not_found() -> CommandResult:
    return CommandResult(success=False, message="Device not found")
