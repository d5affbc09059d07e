"""Device models for the incubator fleet.

Defines the class profiles (``DeviceClass``, ``ClassProfile``), the hard
physical bounds every reading is clamped to, and ``DeviceState`` - the
per-device mutable record owned by the simulator's registry.
"""

from __future__ import annotations

import collections
import math
import threading
import time
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from incubator_sim.models import DeviceStatus, Reading

__all__ = [
    "CLASS_PROFILES",
    "DEFAULT_FLEET",
    "HARD_BOUNDS",
    "Baseline",
    "ClassProfile",
    "DeviceClass",
    "DeviceState",
    "Metric",
    "clamp",
    "get_profile",
]


class DeviceClass(StrEnum):
    """Device tiers."""

    STANDARD = "Standard"
    PREMIUM = "Premium"
    RESEARCH = "Research"


class Metric(StrEnum):
    """Metrics carried by a reading."""

    TEMPERATURE = "temperature"
    CO2 = "co2"
    HUMIDITY = "humidity"
    OXYGEN = "oxygen"
    BATTERY = "battery"


class ClassProfile(BaseModel):
    """Baseline and precision parameters shared by every device of a class.

    ``precision`` is the manufacturer's +/- tolerance per metric; the simulator
    samples with ``stdev = precision / 3`` so the tolerance is a 3-sigma band.
    """

    model_config = {"frozen": True}

    device_class: DeviceClass
    temperature: float = 37.0
    co2: float = 5.0
    humidity: float = 85.0
    oxygen: float | None = None
    battery: float = 100.0
    precision: dict[Metric, float]
    max_battery: float

    @property
    def metrics(self) -> tuple[Metric, ...]:
        """Noisy metrics this class reports (battery is deterministic)."""
        base = (Metric.TEMPERATURE, Metric.CO2, Metric.HUMIDITY)
        return (*base, Metric.OXYGEN) if self.oxygen is not None else base


CLASS_PROFILES: dict[DeviceClass, ClassProfile] = {
    DeviceClass.STANDARD: ClassProfile(
        device_class=DeviceClass.STANDARD,
        precision={Metric.TEMPERATURE: 0.3, Metric.CO2: 0.2, Metric.HUMIDITY: 3.0},
        max_battery=8,
    ),
    DeviceClass.PREMIUM: ClassProfile(
        device_class=DeviceClass.PREMIUM,
        precision={Metric.TEMPERATURE: 0.1, Metric.CO2: 0.1, Metric.HUMIDITY: 2.0},
        max_battery=12,
    ),
    DeviceClass.RESEARCH: ClassProfile(
        device_class=DeviceClass.RESEARCH,
        oxygen=20.0,
        precision={
            Metric.TEMPERATURE: 0.05,
            Metric.CO2: 0.05,
            Metric.HUMIDITY: 1.0,
            Metric.OXYGEN: 0.5,
        },
        max_battery=24,
    ),
}

# (min, max) physical limits; readings never leave these.
HARD_BOUNDS: dict[Metric, tuple[float, float]] = {
    Metric.TEMPERATURE: (35.0, 40.0),
    Metric.CO2: (3.0, 7.0),
    Metric.HUMIDITY: (70.0, 95.0),
    Metric.OXYGEN: (18.0, 22.0),
    Metric.BATTERY: (0.0, 100.0),
}

# The six-device fleet used when no devices are configured.
DEFAULT_FLEET: list[tuple[str, DeviceClass]] = [
    ("CO-STD-001", DeviceClass.STANDARD),
    ("CO-STD-002", DeviceClass.STANDARD),
    ("CO-PREM-001", DeviceClass.PREMIUM),
    ("CO-PREM-002", DeviceClass.PREMIUM),
    ("CO-RES-001", DeviceClass.RESEARCH),
    ("CO-RES-002", DeviceClass.RESEARCH),
]


def get_profile(device_class: str | DeviceClass) -> ClassProfile:
    """Return the profile for *device_class*, falling back to Standard."""
    try:
        return CLASS_PROFILES[DeviceClass(device_class)]
    except ValueError:
        return CLASS_PROFILES[DeviceClass.STANDARD]


def clamp(metric: Metric, value: float) -> float:
    """Clamp *value* to the hard bound of *metric*."""
    low, high = HARD_BOUNDS[metric]
    return max(low, min(high, value))


class Baseline(BaseModel):
    """Current baseline values of one device.

    Only ``battery`` drifts at runtime; calibration rebuilds the whole
    baseline from the class profile.
    """

    temperature: float
    co2: float
    humidity: float
    battery: float
    oxygen: float | None = None

    @classmethod
    def from_profile(cls, profile: ClassProfile) -> Baseline:
        return cls(
            temperature=profile.temperature,
            co2=profile.co2,
            humidity=profile.humidity,
            battery=profile.battery,
            oxygen=profile.oxygen,
        )


class DeviceState:
    """Mutable state of a single incubator.

    Instances are owned by :class:`~incubator_sim.generator.TelemetrySimulator`;
    every mutation happens under ``lock`` so that the tick driver and
    command handlers never interleave on the same device.
    """

    def __init__(
        self,
        device_id: str,
        device_class: str | DeviceClass = DeviceClass.STANDARD,
        *,
        name: str | None = None,
        history_capacity: int = 100,
    ) -> None:
        if history_capacity < 1:
            raise ValueError("history_capacity must be >= 1")
        self.id = device_id
        self.profile = get_profile(device_class)
        self.name = name or f"CultureON {self.profile.device_class.value} - {device_id}"
        self.status = DeviceStatus.ONLINE
        self.baseline = Baseline.from_profile(self.profile)
        self.history: collections.deque[Reading] = collections.deque(maxlen=history_capacity)
        self.recovering = False
        self.recovery_steps = 0
        self.created_at = time.time()
        self.last_updated = self.created_at
        self.lock = threading.RLock()

    @property
    def device_class(self) -> DeviceClass:
        return self.profile.device_class

    @property
    def history_capacity(self) -> int:
        return self.history.maxlen or 0

    @property
    def online(self) -> bool:
        return self.status == DeviceStatus.ONLINE

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_reading(self, reading: Reading) -> None:
        """Append *reading*, evicting the oldest entry when full."""
        with self.lock:
            self.history.append(reading)
            self.last_updated = time.time()

    def latest_reading(self) -> Reading:
        """Return the newest reading, or baseline defaults if none exist yet."""
        with self.lock:
            if self.history:
                return self.history[-1]
            return Reading(
                device_id=self.id,
                temperature=self.baseline.temperature,
                co2=self.baseline.co2,
                humidity=self.baseline.humidity,
                battery=self.baseline.battery,
                oxygen=self.baseline.oxygen,
                timestamp=self.last_updated,
            )

    def recent_history(self, count: int = 20) -> list[Reading]:
        """Return up to *count* most recent readings, oldest first."""
        with self.lock:
            if count <= 0:
                return []
            return list(self.history)[-count:]

    # ------------------------------------------------------------------
    # Recovery countdown
    # ------------------------------------------------------------------

    def arm_recovery(self, steps: int) -> None:
        with self.lock:
            self.recovering = steps > 0
            self.recovery_steps = max(0, steps)

    def advance_recovery(self) -> None:
        """Consume one recovery step; clears the flag on reaching zero."""
        with self.lock:
            if not self.recovering:
                return
            self.recovery_steps = max(0, self.recovery_steps - 1)
            if self.recovery_steps == 0:
                self.recovering = False

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def statistics(self) -> dict[str, dict[str, float]] | None:
        """Per-metric min/max/avg/std_dev over the retained history."""
        with self.lock:
            readings = list(self.history)
        if not readings:
            return None

        metrics = [Metric.TEMPERATURE, Metric.CO2, Metric.HUMIDITY, Metric.BATTERY]
        if self.profile.oxygen is not None:
            metrics.append(Metric.OXYGEN)

        stats: dict[str, dict[str, float]] = {}
        for metric in metrics:
            values = [v for r in readings if (v := getattr(r, metric.value)) is not None]
            if not values:
                continue
            avg = sum(values) / len(values)
            variance = sum((v - avg) ** 2 for v in values) / len(values)
            stats[metric.value] = {
                "min": min(values),
                "max": max(values),
                "avg": avg,
                "std_dev": math.sqrt(variance),
            }
        return stats

    def uptime(self) -> dict[str, float]:
        total = time.time() - self.created_at
        return {
            "hours": int(total // 3600),
            "minutes": int((total % 3600) // 60),
            "total_seconds": total,
        }

    def summary(self) -> dict[str, Any]:
        """Detailed JSON-safe view of the device."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.device_class.value,
            "status": self.status.value,
            "current_readings": self.latest_reading().to_dict(),
            "statistics": self.statistics(),
            "uptime": self.uptime(),
            "created_at": self.created_at,
            "last_updated": self.last_updated,
        }

    def __repr__(self) -> str:
        return f"DeviceState(id={self.id!r}, class={self.device_class.value}, status={self.status.value})"
