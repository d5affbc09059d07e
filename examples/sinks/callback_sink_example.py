#!/usr/bin/env python3
"""CallbackSink examples -- 3 cases demonstrating lambda shortcuts, async
callbacks, and running alert analytics over persisted records.

Directly runnable (no external services required).

Usage::

    python examples/sinks/callback_sink_example.py           # Case 1 (default)
    python examples/sinks/callback_sink_example.py --case 2   # Async callback
    python examples/sinks/callback_sink_example.py --case 3   # Alert analytics
"""

from __future__ import annotations

import argparse

# ---------------------------------------------------------------------------
# Case 1: Lambda shorthand -- simplest possible sink
# ---------------------------------------------------------------------------


def run_case_1() -> None:
    """A lambda that prints batch sizes.

    Knobs demonstrated:
      - lambda as sink   -> no class needed, just a callable
      - rate_hz=1.0      -> flush once per second
      - batch_size=50    -> up to 50 records per call
    """
    from incubator_sim import BroadcastHub
    from incubator_sim.subscribers import QueueSubscriber

    print("=== Case 1: Lambda shorthand ===\n")

    hub = BroadcastHub(tick_interval_s=1.0)
    hub.add_sink(
        lambda records: print(f"  Persisted {len(records)} records"),
        rate_hz=1.0,
        batch_size=50,
    )

    # The driver only ticks while someone listens.
    hub.run(duration_s=6, subscribers=[QueueSubscriber()])


# ---------------------------------------------------------------------------
# Case 2: Async callback -- auto-detected by CallbackSink
# ---------------------------------------------------------------------------


def run_case_2() -> None:
    """Async callback that simulates I/O-bound persistence.

    Knobs demonstrated:
      - async def callback  -> awaited natively in the event loop
      - rate_hz=2.0         -> 2 flushes per second
    """
    import asyncio

    from incubator_sim import BroadcastHub, Reading
    from incubator_sim.sinks.callback import CallbackSink
    from incubator_sim.subscribers import QueueSubscriber

    print("=== Case 2: Async callback ===\n")

    async def async_store(records):
        await asyncio.sleep(0.01)
        devices = {r.device_id for r in records if isinstance(r, Reading)}
        print(f"  [async] Stored {len(records)} records from {len(devices)} devices")

    hub = BroadcastHub(tick_interval_s=0.5)
    hub.add_sink(CallbackSink(async_store, rate_hz=2.0, batch_size=30))
    hub.run(duration_s=5, subscribers=[QueueSubscriber()])


# ---------------------------------------------------------------------------
# Case 3: Alert analytics
# ---------------------------------------------------------------------------


def run_case_3() -> None:
    """Count alerts per type with a routed alert handler.

    Knobs demonstrated:
      - on_alerts=...   -> handler sees only the alerts of each batch
      - anomaly_probability=0.5 -> alerts frequent enough to watch
    """
    from incubator_sim import BroadcastHub, SimulatorSettings
    from incubator_sim.sinks.callback import CallbackSink
    from incubator_sim.subscribers import QueueSubscriber

    print("=== Case 3: Alert analytics ===\n")

    counts: dict[str, int] = {}

    def tally(alerts):
        for a in alerts:
            counts[a.type] = counts.get(a.type, 0) + 1
        if counts:
            print("  " + "  ".join(f"{k}={v}" for k, v in sorted(counts.items())))

    hub = BroadcastHub(settings=SimulatorSettings(anomaly_probability=0.5, seed=3), tick_interval_s=0.5)
    hub.add_sink(CallbackSink(on_alerts=tally, rate_hz=1.0, batch_size=200))
    hub.run(duration_s=8, subscribers=[QueueSubscriber()])

    print(f"\n  Final: {sum(counts.values())} alerts persisted")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def main() -> None:
    parser = argparse.ArgumentParser(description="CallbackSink examples")
    parser.add_argument("--case", type=int, default=1, choices=[1, 2, 3], help="Which example case to run (default: 1)")
    args = parser.parse_args()

    cases = {
        1: run_case_1,
        2: run_case_2,
        3: run_case_3,
    }
    cases[args.case]()


if __name__ == "__main__":
    main()
