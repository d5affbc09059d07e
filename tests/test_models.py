"""Tests for incubator_sim.models - Reading / Alert creation and serialisation."""

from __future__ import annotations

import json
import time

import pytest
from pydantic import ValidationError

from incubator_sim.models import (
    Alert,
    AnomalyKind,
    CommandResult,
    DeviceStatus,
    HubEvent,
    Reading,
    Severity,
    StatusChange,
    new_alert_id,
)


def _reading(**overrides) -> Reading:
    fields = {
        "device_id": "CO-STD-001",
        "temperature": 37.1,
        "co2": 5.02,
        "humidity": 84.7,
        "battery": 99.2,
        "timestamp": 1_700_000_000.0,
    }
    fields.update(overrides)
    return Reading(**fields)


# -----------------------------------------------------------------------
# Reading
# -----------------------------------------------------------------------


class TestReading:
    """Reading instantiation and field defaults."""

    def test_minimal_construction(self) -> None:
        r = _reading()
        assert r.device_id == "CO-STD-001"
        assert r.oxygen is None
        assert r.anomaly is None

    def test_timestamp_defaults_to_now(self) -> None:
        before = time.time()
        r = Reading(device_id="d", temperature=37, co2=5, humidity=85, battery=100)
        assert before <= r.timestamp <= time.time()

    def test_anomaly_accepts_string_value(self) -> None:
        r = _reading(anomaly="temperature_spike")
        assert r.anomaly is AnomalyKind.TEMPERATURE_SPIKE

    def test_unknown_anomaly_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _reading(anomaly="meteor_strike")

    def test_to_dict_is_json_safe(self) -> None:
        d = _reading(oxygen=20.1, anomaly=AnomalyKind.DOOR_OPENED).to_dict()
        assert d["anomaly"] == "door_opened"
        assert d["oxygen"] == 20.1
        json.dumps(d)

    def test_to_json(self) -> None:
        parsed = json.loads(_reading().to_json())
        assert parsed["device_id"] == "CO-STD-001"
        assert parsed["temperature"] == 37.1


# -----------------------------------------------------------------------
# Alert
# -----------------------------------------------------------------------


class TestAlert:
    """Alert ids, defaults and serialisation."""

    def test_id_format(self) -> None:
        alert_id = new_alert_id()
        prefix, millis, suffix = alert_id.split("-")
        assert prefix == "alert"
        assert millis.isdigit()
        assert len(suffix) == 9

    def test_ids_are_unique(self) -> None:
        assert len({new_alert_id() for _ in range(200)}) == 200

    def test_defaults(self) -> None:
        a = Alert(device_id="d", type="BATTERY_LOW", message="m", severity=Severity.WARNING, value=15.0)
        assert a.id.startswith("alert-")
        assert a.acknowledged is False
        assert a.acknowledged_at is None
        assert a.threshold == {}

    def test_to_dict_severity_as_string(self) -> None:
        a = Alert(
            device_id="d",
            type="TEMPERATURE_CRITICAL",
            message="m",
            severity=Severity.CRITICAL,
            value=39.0,
            threshold={"min": 36.0, "max": 38.0},
        )
        d = a.to_dict()
        assert d["severity"] == "CRITICAL"
        assert d["threshold"] == {"min": 36.0, "max": 38.0}


# -----------------------------------------------------------------------
# Small value types
# -----------------------------------------------------------------------


class TestValueTypes:
    def test_status_change_dump(self) -> None:
        change = StatusChange(device_id="d", status=DeviceStatus.OFFLINE)
        assert change.model_dump(mode="json") == {"device_id": "d", "status": "offline"}

    def test_command_result(self) -> None:
        result = CommandResult(success=False, message="Device not found")
        assert not result.success

    def test_hub_event_to_json(self) -> None:
        event = HubEvent(event="alerts-cleared", data={"device_id": None}, timestamp=1.0)
        assert json.loads(event.to_json()) == {
            "event": "alerts-cleared",
            "data": {"device_id": None},
            "timestamp": 1.0,
        }
