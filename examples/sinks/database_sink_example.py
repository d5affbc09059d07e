#!/usr/bin/env python3
"""DatabaseSink example -- persist readings and alerts to SQLite and query
them back after the run.

Requires the database extra::

    pip install incubator-fleet-simulator[database]

Usage::

    python examples/sinks/database_sink_example.py
"""

from __future__ import annotations

import os
import sqlite3

_DB_PATH = "cultureon_example.db"


def _check_database() -> bool:
    try:
        from incubator_sim.sinks.database import DatabaseSink  # noqa: F401
        return True
    except ImportError:
        print("DatabaseSink requires sqlalchemy + aiosqlite. Install with:")
        print("  pip install incubator-fleet-simulator[database]")
        return False


def main() -> None:
    if not _check_database():
        return

    from incubator_sim import BroadcastHub, SimulatorSettings
    from incubator_sim.sinks.database import DatabaseSink
    from incubator_sim.subscribers import QueueSubscriber

    if os.path.exists(_DB_PATH):
        os.remove(_DB_PATH)

    print("=== SQLite persistence ===\n")

    hub = BroadcastHub(settings=SimulatorSettings(anomaly_probability=0.3), tick_interval_s=0.5)
    hub.add_sink(DatabaseSink(connection_string=f"sqlite+aiosqlite:///{_DB_PATH}", rate_hz=1.0, batch_size=200))
    hub.run(duration_s=6, subscribers=[QueueSubscriber()])

    with sqlite3.connect(_DB_PATH) as conn:
        readings = conn.execute("SELECT COUNT(*) FROM sensor_readings").fetchone()[0]
        print(f"  sensor_readings: {readings} rows")
        for alert_type, count in conn.execute("SELECT type, COUNT(*) FROM alerts GROUP BY type ORDER BY 2 DESC"):
            print(f"  alerts {alert_type:<22s} {count}")


if __name__ == "__main__":
    main()
