"""Tests for incubator_sim.device_models - profiles, bounds, DeviceState."""

from __future__ import annotations

import pytest

from incubator_sim.device_models import (
    CLASS_PROFILES,
    DEFAULT_FLEET,
    HARD_BOUNDS,
    DeviceClass,
    DeviceState,
    Metric,
    clamp,
    get_profile,
)
from incubator_sim.models import DeviceStatus, Reading


def _reading(device_id: str = "CO-STD-001", temperature: float = 37.0, ts: float = 0.0) -> Reading:
    return Reading(device_id=device_id, temperature=temperature, co2=5.0, humidity=85.0, battery=90.0, timestamp=ts)


# -----------------------------------------------------------------------
# Profiles and bounds
# -----------------------------------------------------------------------


class TestClassProfiles:
    """The three device tiers."""

    def test_all_classes_have_profiles(self) -> None:
        assert set(CLASS_PROFILES) == set(DeviceClass)

    def test_only_research_reports_oxygen(self) -> None:
        assert CLASS_PROFILES[DeviceClass.RESEARCH].oxygen == 20.0
        assert Metric.OXYGEN in CLASS_PROFILES[DeviceClass.RESEARCH].metrics
        assert CLASS_PROFILES[DeviceClass.STANDARD].oxygen is None
        assert Metric.OXYGEN not in CLASS_PROFILES[DeviceClass.PREMIUM].metrics

    def test_precision_tightens_with_tier(self) -> None:
        std = CLASS_PROFILES[DeviceClass.STANDARD].precision[Metric.TEMPERATURE]
        prem = CLASS_PROFILES[DeviceClass.PREMIUM].precision[Metric.TEMPERATURE]
        res = CLASS_PROFILES[DeviceClass.RESEARCH].precision[Metric.TEMPERATURE]
        assert std > prem > res

    def test_max_battery(self) -> None:
        assert [CLASS_PROFILES[c].max_battery for c in DeviceClass] == [8, 12, 24]

    def test_get_profile_falls_back_to_standard(self) -> None:
        assert get_profile("Quantum").device_class is DeviceClass.STANDARD
        assert get_profile("Premium").device_class is DeviceClass.PREMIUM

    def test_default_fleet(self) -> None:
        assert len(DEFAULT_FLEET) == 6
        assert {cls for _, cls in DEFAULT_FLEET} == set(DeviceClass)


class TestClamp:
    @pytest.mark.parametrize("metric", list(Metric))
    def test_clamp_to_hard_bounds(self, metric: Metric) -> None:
        low, high = HARD_BOUNDS[metric]
        assert clamp(metric, low - 50) == low
        assert clamp(metric, high + 50) == high
        assert clamp(metric, (low + high) / 2) == (low + high) / 2


# -----------------------------------------------------------------------
# DeviceState
# -----------------------------------------------------------------------


class TestDeviceState:
    """Per-device mutable record."""

    def test_defaults(self) -> None:
        device = DeviceState("CO-PREM-001", DeviceClass.PREMIUM)
        assert device.name == "CultureON Premium - CO-PREM-001"
        assert device.status is DeviceStatus.ONLINE
        assert device.online
        assert device.baseline.temperature == 37.0
        assert device.baseline.oxygen is None
        assert not device.recovering

    def test_custom_name(self) -> None:
        assert DeviceState("x", name="Lab 3").name == "Lab 3"

    def test_invalid_history_capacity(self) -> None:
        with pytest.raises(ValueError):
            DeviceState("x", history_capacity=0)

    def test_history_is_fifo_bounded(self) -> None:
        device = DeviceState("CO-STD-001", history_capacity=3)
        for i in range(5):
            device.add_reading(_reading(ts=float(i)))
        assert len(device.history) == 3
        assert [r.timestamp for r in device.history] == [2.0, 3.0, 4.0]

    def test_latest_reading_without_history_uses_baseline(self) -> None:
        device = DeviceState("CO-RES-001", DeviceClass.RESEARCH)
        latest = device.latest_reading()
        assert latest.device_id == "CO-RES-001"
        assert latest.temperature == 37.0
        assert latest.oxygen == 20.0
        assert latest.battery == 100.0

    def test_latest_reading_returns_newest(self) -> None:
        device = DeviceState("CO-STD-001")
        device.add_reading(_reading(temperature=36.9))
        device.add_reading(_reading(temperature=37.2))
        assert device.latest_reading().temperature == 37.2

    def test_recent_history(self) -> None:
        device = DeviceState("CO-STD-001")
        for i in range(30):
            device.add_reading(_reading(ts=float(i)))
        recent = device.recent_history(20)
        assert len(recent) == 20
        assert recent[0].timestamp == 10.0
        assert recent[-1].timestamp == 29.0
        assert device.recent_history(0) == []

    def test_recovery_countdown(self) -> None:
        device = DeviceState("CO-STD-001")
        device.arm_recovery(2)
        assert device.recovering
        device.advance_recovery()
        assert device.recovering and device.recovery_steps == 1
        device.advance_recovery()
        assert not device.recovering
        assert device.recovery_steps == 0
        device.advance_recovery()
        assert device.recovery_steps == 0

    def test_statistics(self) -> None:
        device = DeviceState("CO-STD-001")
        assert device.statistics() is None
        device.add_reading(_reading(temperature=36.0))
        device.add_reading(_reading(temperature=38.0))
        stats = device.statistics()
        assert stats is not None
        assert stats["temperature"] == {"min": 36.0, "max": 38.0, "avg": 37.0, "std_dev": 1.0}
        assert "oxygen" not in stats

    def test_summary_is_json_safe(self) -> None:
        device = DeviceState("CO-STD-001")
        summary = device.summary()
        assert summary["type"] == "Standard"
        assert summary["status"] == "online"
        assert summary["statistics"] is None
        assert set(summary["uptime"]) == {"hours", "minutes", "total_seconds"}
