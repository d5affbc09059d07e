"""File sink - writes readings and alerts to CSV, JSON Lines, or Parquet
files with optional time-based rotation.

Readings and alerts go to separate files
(``readings_<ts>.<ext>`` / ``alerts_<ts>.<ext>``).

Parquet support requires the ``file`` extra::

    pip install incubator-fleet-simulator[file]
"""

from __future__ import annotations

import csv
import json
import logging
import time
from pathlib import Path
from typing import IO, Any, ClassVar

from incubator_sim.models import TelemetryRecord
from incubator_sim.sinks.base import Sink, split_records

__all__ = ["FileSink"]

logger = logging.getLogger("incubator_sim.sinks.file")

_EXTENSIONS = {"csv": "csv", "json": "jsonl", "parquet": "parquet"}


def _parse_rotation(rotation: str | None) -> float | None:
    """Convert a human-readable rotation interval to seconds.

    Accepted formats: ``"30s"``, ``"5m"``, ``"1h"``, ``"1d"``.
    Returns ``None`` if rotation is disabled.
    """
    if not rotation:
        return None
    rotation = rotation.strip().lower()
    if rotation.endswith("s"):
        return float(rotation[:-1])
    if rotation.endswith("m"):
        return float(rotation[:-1]) * 60
    if rotation.endswith("h"):
        return float(rotation[:-1]) * 3600
    if rotation.endswith("d"):
        return float(rotation[:-1]) * 86400
    return float(rotation)  # assume seconds


class _Stream:
    """One output file for one record kind."""

    def __init__(self, kind: str, fields: list[str]) -> None:
        self.kind = kind
        self.fields = fields
        self.path: Path | None = None
        self.handle: IO[str] | None = None
        self.csv_writer: csv.DictWriter[str] | None = None
        self.pending: list[dict[str, Any]] = []  # parquet batching


class FileSink(Sink):
    """Write readings and alerts to local files.

    Parameters:
        path: Output directory (created automatically).
        format: ``"csv"``, ``"json"``, or ``"parquet"``.
        rotation: Rotate to new files periodically - e.g. ``"1h"``,
                  ``"30m"``, ``"60s"``.  ``None`` means one file per kind.
        rate_hz / batch_size / **kwargs: Forwarded to :class:`Sink`.
    """

    _READING_FIELDS: ClassVar[list[str]] = [
        "timestamp",
        "device_id",
        "temperature",
        "co2",
        "humidity",
        "oxygen",
        "battery",
        "anomaly",
    ]
    _ALERT_FIELDS: ClassVar[list[str]] = [
        "timestamp",
        "id",
        "device_id",
        "type",
        "severity",
        "value",
        "message",
        "threshold",
        "acknowledged",
        "acknowledged_at",
    ]

    def __init__(
        self,
        *,
        path: str = "./output",
        format: str = "csv",
        rotation: str | None = None,
        rate_hz: float | None = None,
        batch_size: int = 500,
        **kwargs: Any,
    ) -> None:
        super().__init__(rate_hz=rate_hz, batch_size=batch_size, **kwargs)
        self._format = format.lower()
        if self._format not in _EXTENSIONS:
            raise ValueError(f"Unknown file format: {format}")
        self._dir = Path(path)
        self._rotation_s = _parse_rotation(rotation)
        self._file_start_time = 0.0
        self._streams = {
            "readings": _Stream("readings", self._READING_FIELDS),
            "alerts": _Stream("alerts", self._ALERT_FIELDS),
        }

    async def connect(self) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        self._open_files()
        logger.info("FileSink writing %s to %s", self._format, self._dir)

    async def write(self, records: list[TelemetryRecord]) -> None:
        if self._rotation_s and (time.time() - self._file_start_time >= self._rotation_s):
            self._close_files()
            self._open_files()

        readings, alerts = split_records(records)
        self._write_rows(self._streams["readings"], [r.to_dict() for r in readings])
        self._write_rows(self._streams["alerts"], [self._alert_row(a.to_dict()) for a in alerts])

    async def flush(self) -> None:
        for stream in self._streams.values():
            if self._format == "parquet":
                self._flush_parquet(stream)
            elif stream.handle and not stream.handle.closed:
                stream.handle.flush()

    async def close(self) -> None:
        await self.flush()
        self._close_files()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _alert_row(row: dict[str, Any]) -> dict[str, Any]:
        row["threshold"] = json.dumps(row["threshold"])
        return row

    def _open_files(self) -> None:
        suffix = time.strftime("%Y%m%d_%H%M%S", time.localtime())
        ext = _EXTENSIONS[self._format]
        for stream in self._streams.values():
            stream.path = self._dir / f"{stream.kind}_{suffix}.{ext}"
            stream.csv_writer = None
            if self._format != "parquet":
                stream.handle = open(stream.path, "w", newline="", encoding="utf-8")  # noqa: SIM115
            logger.debug("Opened file: %s", stream.path)
        self._file_start_time = time.time()

    def _close_files(self) -> None:
        for stream in self._streams.values():
            if self._format == "parquet":
                self._flush_parquet(stream)
            if stream.handle and not stream.handle.closed:
                stream.handle.close()
            stream.handle = None
            stream.csv_writer = None

    def _write_rows(self, stream: _Stream, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        if self._format == "parquet":
            stream.pending.extend(rows)
            return
        if stream.handle is None:
            return
        if self._format == "csv":
            if stream.csv_writer is None:
                stream.csv_writer = csv.DictWriter(stream.handle, fieldnames=stream.fields, extrasaction="ignore")
                stream.csv_writer.writeheader()
            stream.csv_writer.writerows(rows)
        else:
            for row in rows:
                stream.handle.write(json.dumps(row) + "\n")
        stream.handle.flush()

    def _flush_parquet(self, stream: _Stream) -> None:
        if not stream.pending or stream.path is None:
            return
        try:
            import pyarrow as pa
            import pyarrow.parquet as pq
        except ImportError as err:
            raise ImportError(
                "pyarrow is required for Parquet output.  Install with: pip install incubator-fleet-simulator[file]"
            ) from err

        table = pa.Table.from_pylist(stream.pending)
        if stream.path.exists():
            existing = pq.read_table(str(stream.path))
            table = pa.concat_tables([existing, table])

        pq.write_table(table, str(stream.path))
        logger.debug("Flushed %d %s to %s", len(stream.pending), stream.kind, stream.path)
        stream.pending.clear()
