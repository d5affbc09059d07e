"""Tests for incubator_sim.config - YAML config loading and parsing."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from incubator_sim.config import DeviceSpec, FleetConfig, SimulatorSettings, load_yaml_config
from incubator_sim.device_models import DeviceClass

# -----------------------------------------------------------------------
# Models
# -----------------------------------------------------------------------


class TestSimulatorSettings:
    """SimulatorSettings defaults and validation."""

    def test_defaults(self) -> None:
        s = SimulatorSettings()
        assert s.tick_interval_s == 5.0
        assert s.offline_probability == 0.001
        assert s.recovery_probability == 0.1
        assert s.anomaly_probability == 0.05
        assert s.battery_degradation_rate == 0.001
        assert s.door_recovery_steps == 5
        assert s.history_capacity == 100
        assert s.seed is None

    def test_probability_out_of_range(self) -> None:
        with pytest.raises(ValidationError):
            SimulatorSettings(anomaly_probability=1.5)

    def test_interval_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            SimulatorSettings(tick_interval_s=0)


class TestFleetConfig:
    def test_defaults(self) -> None:
        cfg = FleetConfig()
        assert len(cfg.devices) == 6
        assert cfg.devices[0] == DeviceSpec(id="CO-STD-001", device_class=DeviceClass.STANDARD)
        assert cfg.ledger_capacity == 100
        assert cfg.snapshot_history == 20
        assert cfg.sink_configs == []
        assert cfg.duration_s is None
        assert cfg.log_level == "INFO"


# -----------------------------------------------------------------------
# load_yaml_config
# -----------------------------------------------------------------------


class TestLoadYAMLConfig:
    """load_yaml_config() parsing from temporary YAML files."""

    def test_full_config(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "fleet.yaml"
        cfg_file.write_text(
            """\
simulator:
  tick_interval_s: 1.5
  anomaly_probability: 0.2
  seed: 42
  duration_s: 30
  log_level: debug
  snapshot_history: 5

devices:
  - id: LAB-1
    device_class: research
    name: Lab one
  - id: LAB-2
    type: Premium

alerts:
  ledger_capacity: 50
  thresholds:
    battery: {min: 30.0, critical: 15.0}

sinks:
  - type: console
    rate_hz: 0.5
"""
        )
        cfg = load_yaml_config(cfg_file)
        assert cfg.simulator.tick_interval_s == 1.5
        assert cfg.simulator.anomaly_probability == 0.2
        assert cfg.simulator.seed == 42
        assert cfg.duration_s == 30.0
        assert cfg.log_level == "DEBUG"
        assert cfg.snapshot_history == 5
        assert [(d.id, d.device_class) for d in cfg.devices] == [
            ("LAB-1", DeviceClass.RESEARCH),
            ("LAB-2", DeviceClass.PREMIUM),
        ]
        assert cfg.devices[0].name == "Lab one"
        assert cfg.ledger_capacity == 50
        assert cfg.thresholds.battery.min == 30.0
        assert cfg.thresholds.temperature.critical.max == 38.0
        assert cfg.sink_configs == [{"type": "console", "rate_hz": 0.5}]

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "empty.yaml"
        cfg_file.write_text("")
        cfg = load_yaml_config(cfg_file)
        assert len(cfg.devices) == 6
        assert cfg.simulator == SimulatorSettings()

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_yaml_config(tmp_path / "nope.yaml")

    def test_unknown_device_class_falls_back(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        cfg_file = tmp_path / "fleet.yaml"
        cfg_file.write_text("devices:\n  - id: X\n    device_class: Deluxe\n")
        cfg = load_yaml_config(cfg_file)
        assert cfg.devices[0].device_class is DeviceClass.STANDARD
        assert "Unknown device class" in caplog.text

    def test_duplicate_device_id_raises(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "fleet.yaml"
        cfg_file.write_text("devices:\n  - id: X\n  - id: X\n")
        with pytest.raises(ValueError, match="Duplicate device id"):
            load_yaml_config(cfg_file)

    def test_invalid_thresholds_raise(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "fleet.yaml"
        cfg_file.write_text("alerts:\n  thresholds:\n    humidity: {min: 90, max: 80, critical: {min: 70, max: 95}}\n")
        with pytest.raises(ValueError):
            load_yaml_config(cfg_file)
