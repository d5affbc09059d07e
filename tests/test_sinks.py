"""Tests for built-in sinks - ConsoleSink, CallbackSink, FileSink."""

from __future__ import annotations

import csv
import io
import json
import time
from pathlib import Path

import pytest

from incubator_sim.models import Alert, AnomalyKind, Reading, Severity, TelemetryRecord
from incubator_sim.sinks.base import SinkConfig, split_records
from incubator_sim.sinks.callback import CallbackSink
from incubator_sim.sinks.console import ConsoleSink
from incubator_sim.sinks.file import FileSink, _parse_rotation

# -----------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------


def _make_readings(n: int = 3) -> list[Reading]:
    return [
        Reading(
            device_id=f"CO-STD-00{i}",
            temperature=37.0 + i * 0.1,
            co2=5.0,
            humidity=85.0,
            battery=99.0,
            timestamp=1_700_000_000.0 + i,
        )
        for i in range(n)
    ]


def _make_alert() -> Alert:
    return Alert(
        device_id="CO-STD-000",
        type="TEMPERATURE_CRITICAL",
        message="Critical temperature: 39.00°C on CO-STD-000",
        severity=Severity.CRITICAL,
        value=39.0,
        threshold={"min": 36.0, "max": 38.0},
        timestamp=1_700_000_010.0,
    )


# -----------------------------------------------------------------------
# SinkConfig
# -----------------------------------------------------------------------


class TestSinkConfig:
    """SinkConfig Pydantic model."""

    def test_defaults(self) -> None:
        cfg = SinkConfig()
        assert cfg.rate_hz is None
        assert cfg.batch_size == 100
        assert cfg.max_buffer_size == 10_000
        assert cfg.backpressure == "drop_oldest"
        assert cfg.retry_count == 1

    def test_custom_values(self) -> None:
        cfg = SinkConfig(rate_hz=2.0, batch_size=50, backpressure="drop_newest")
        assert cfg.rate_hz == 2.0
        assert cfg.batch_size == 50
        assert cfg.backpressure == "drop_newest"

    def test_bounds_validated(self) -> None:
        with pytest.raises(ValueError):
            SinkConfig(batch_size=0)
        with pytest.raises(ValueError):
            ConsoleSink(rate_hz=-1.0)

    def test_unknown_backpressure_rejected(self) -> None:
        with pytest.raises(ValueError, match="backpressure"):
            ConsoleSink(backpressure="block")


class TestSplitRecords:
    def test_preserves_order(self) -> None:
        readings = _make_readings(2)
        alert = _make_alert()
        r, a = split_records([readings[0], alert, readings[1]])
        assert r == readings
        assert a == [alert]


# -----------------------------------------------------------------------
# ConsoleSink
# -----------------------------------------------------------------------


class TestConsoleSink:
    """ConsoleSink text and JSON output."""

    @pytest.mark.asyncio
    async def test_text_format(self) -> None:
        buf = io.StringIO()
        sink = ConsoleSink(fmt="text", stream=buf, rate_hz=1.0)
        await sink.connect()
        await sink.write([*_make_readings(2), _make_alert()])
        await sink.flush()
        await sink.close()
        lines = buf.getvalue().splitlines()
        assert lines[0].startswith("[reading/CO-STD-000] T=37.00")
        assert "CO-STD-001" in lines[1]
        assert lines[2] == (
            "[alert/CO-STD-000] CRITICAL TEMPERATURE_CRITICAL: Critical temperature: 39.00°C on CO-STD-000"
        )

    @pytest.mark.asyncio
    async def test_text_shows_oxygen_and_anomaly(self) -> None:
        buf = io.StringIO()
        sink = ConsoleSink(stream=buf)
        reading = _make_readings(1)[0].model_copy(update={"oxygen": 20.25, "anomaly": AnomalyKind.CO2_DRIFT})
        await sink.write([reading])
        assert "O2=20.25" in buf.getvalue()
        assert "(co2_drift)" in buf.getvalue()

    @pytest.mark.asyncio
    async def test_json_format(self) -> None:
        buf = io.StringIO()
        sink = ConsoleSink(fmt="json", stream=buf, rate_hz=1.0)
        await sink.connect()
        await sink.write([_make_readings(1)[0], _make_alert()])
        await sink.close()
        lines = buf.getvalue().strip().splitlines()
        assert json.loads(lines[0])["device_id"] == "CO-STD-000"
        assert json.loads(lines[1])["severity"] == "CRITICAL"


# -----------------------------------------------------------------------
# CallbackSink
# -----------------------------------------------------------------------


class TestCallbackSink:
    """CallbackSink with sync and async callbacks."""

    @pytest.mark.asyncio
    async def test_sync_callback_receives_records(self) -> None:
        received: list[list[TelemetryRecord]] = []
        sink = CallbackSink(lambda recs: received.append(recs), rate_hz=1.0)
        await sink.connect()
        records = [*_make_readings(3), _make_alert()]
        await sink.write(records)
        await sink.flush()
        await sink.close()
        assert len(received) == 1
        assert received[0] == records

    @pytest.mark.asyncio
    async def test_async_callback(self) -> None:
        received: list[list[TelemetryRecord]] = []

        async def async_cb(recs: list[TelemetryRecord]) -> None:
            received.append(recs)

        sink = CallbackSink(async_cb, rate_hz=1.0)
        await sink.connect()
        await sink.write(_make_readings(2))
        await sink.close()
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_routes_readings_and_alerts(self) -> None:
        readings_seen: list[list[Reading]] = []
        alerts_seen: list[list[Alert]] = []

        async def page(alerts: list[Alert]) -> None:
            alerts_seen.append(alerts)

        sink = CallbackSink(on_readings=readings_seen.append, on_alerts=page)
        alert = _make_alert()
        await sink.write([_make_readings(1)[0], alert, *_make_readings(2)])
        assert [len(batch) for batch in readings_seen] == [3]
        assert alerts_seen == [[alert]]

    @pytest.mark.asyncio
    async def test_routed_handler_skipped_for_empty_half(self) -> None:
        alerts_seen: list[list[Alert]] = []
        sink = CallbackSink(on_alerts=alerts_seen.append)
        await sink.write(_make_readings(4))
        assert alerts_seen == []

    @pytest.mark.asyncio
    async def test_stream_and_routed_handlers_together(self) -> None:
        everything: list[list[TelemetryRecord]] = []
        alerts_seen: list[list[Alert]] = []
        sink = CallbackSink(everything.append, on_alerts=alerts_seen.append)
        records = [*_make_readings(2), _make_alert()]
        await sink.write(records)
        assert everything == [records]
        assert len(alerts_seen[0]) == 1

    def test_requires_a_handler(self) -> None:
        with pytest.raises(ValueError, match="on_readings"):
            CallbackSink()

    def test_import_path_handler(self) -> None:
        sink = CallbackSink("json:dumps")
        assert sink._callback is json.dumps

    @pytest.mark.parametrize("path", ["json.dumps", "json:", "json:__name__"])
    def test_bad_import_path(self, path: str) -> None:
        with pytest.raises(ValueError):
            CallbackSink(path)


# -----------------------------------------------------------------------
# FileSink
# -----------------------------------------------------------------------


class TestParseRotation:
    """_parse_rotation helper."""

    def test_none(self) -> None:
        assert _parse_rotation(None) is None

    def test_empty(self) -> None:
        assert _parse_rotation("") is None

    def test_seconds(self) -> None:
        assert _parse_rotation("30s") == 30.0

    def test_minutes(self) -> None:
        assert _parse_rotation("5m") == 300.0

    def test_hours(self) -> None:
        assert _parse_rotation("1h") == 3600.0

    def test_days(self) -> None:
        assert _parse_rotation("1d") == 86400.0

    def test_bare_number(self) -> None:
        assert _parse_rotation("120") == 120.0


class TestFileSink:
    """FileSink CSV, JSON Lines and Parquet output."""

    @pytest.mark.asyncio
    async def test_csv_output(self, tmp_path: Path) -> None:
        sink = FileSink(path=str(tmp_path), format="csv", rate_hz=1.0)
        await sink.connect()
        await sink.write([*_make_readings(5), _make_alert()])
        await sink.flush()
        await sink.close()

        readings_file = next(tmp_path.glob("readings_*.csv"))
        with readings_file.open(newline="") as fh:
            rows = list(csv.DictReader(fh))
        assert len(rows) == 5
        assert rows[0]["device_id"] == "CO-STD-000"
        assert rows[0]["oxygen"] == ""

        alerts_file = next(tmp_path.glob("alerts_*.csv"))
        with alerts_file.open(newline="", encoding="utf-8") as fh:
            alert_rows = list(csv.DictReader(fh))
        assert len(alert_rows) == 1
        assert json.loads(alert_rows[0]["threshold"]) == {"min": 36.0, "max": 38.0}
        assert alert_rows[0]["severity"] == "CRITICAL"

    @pytest.mark.asyncio
    async def test_json_output(self, tmp_path: Path) -> None:
        sink = FileSink(path=str(tmp_path), format="json", rate_hz=1.0)
        await sink.connect()
        await sink.write([*_make_readings(3), _make_alert()])
        await sink.flush()
        await sink.close()

        lines = next(tmp_path.glob("readings_*.jsonl")).read_text().strip().splitlines()
        assert len(lines) == 3
        assert "temperature" in json.loads(lines[0])
        alert_lines = next(tmp_path.glob("alerts_*.jsonl")).read_text(encoding="utf-8").strip().splitlines()
        assert json.loads(alert_lines[0])["type"] == "TEMPERATURE_CRITICAL"

    @pytest.mark.asyncio
    async def test_csv_rotation(self, tmp_path: Path) -> None:
        """File rotation should reopen files when the interval elapses."""
        sink = FileSink(path=str(tmp_path), format="csv", rotation="1s", rate_hz=1.0)
        await sink.connect()
        await sink.write(_make_readings(2))

        # Pretend time moved forward past rotation
        sink._file_start_time = time.time() - 2.0
        await sink.write(_make_readings(2))

        await sink.flush()
        await sink.close()

        assert len(list(tmp_path.glob("readings_*.csv"))) >= 1

    def test_unknown_format_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Unknown file format"):
            FileSink(path=str(tmp_path), format="xml", rate_hz=1.0)

    @pytest.mark.asyncio
    async def test_parquet_output(self, tmp_path: Path) -> None:
        """Parquet output should buffer and flush via pyarrow."""
        try:
            import pyarrow.parquet as pq
        except ImportError:
            pytest.skip("pyarrow not installed")

        readings = [r.model_copy(update={"oxygen": 20.0, "anomaly": AnomalyKind.CO2_DRIFT}) for r in _make_readings(5)]
        sink = FileSink(path=str(tmp_path), format="parquet", rate_hz=1.0)
        await sink.connect()
        await sink.write(readings)
        await sink.flush()
        await sink.close()

        parquet_files = list(tmp_path.glob("readings_*.parquet"))
        assert len(parquet_files) == 1
        assert pq.read_table(str(parquet_files[0])).num_rows == 5
        assert list(tmp_path.glob("alerts_*.parquet")) == []

    @pytest.mark.asyncio
    async def test_close_idempotent(self, tmp_path: Path) -> None:
        sink = FileSink(path=str(tmp_path), format="csv", rate_hz=1.0)
        await sink.connect()
        await sink.close()
        await sink.close()  # Second close should not raise

    @pytest.mark.asyncio
    async def test_creates_output_dir(self, tmp_path: Path) -> None:
        new_dir = tmp_path / "nested" / "output"
        sink = FileSink(path=str(new_dir), format="json", rate_hz=1.0)
        await sink.connect()
        assert new_dir.exists()
        await sink.close()
