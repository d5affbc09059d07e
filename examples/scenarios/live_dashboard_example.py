#!/usr/bin/env python3
"""Live subscriber example -- what a dashboard transport does with the hub.

A ``QueueSubscriber`` stands in for one connected client.  The client sees
the ``initial-data`` snapshot, a few ticks of ``sensor-data-batch``, then
issues the same inbound commands a browser would (door opening, device
commands, threshold update) and watches the resulting events.

Directly runnable (no external services required).

Usage::

    python examples/scenarios/live_dashboard_example.py
"""

from __future__ import annotations

import asyncio
import contextlib

from incubator_sim import BroadcastHub, SimulatorSettings
from incubator_sim.subscribers import QueueSubscriber


async def _consume(sub: QueueSubscriber) -> None:
    async for event in sub:
        data = event.data
        if event.event == "sensor-data-batch":
            summary = f"{len(data)} readings"
        elif event.event == "initial-data":
            summary = f"{len(data['devices'])} devices"
        elif event.event == "alert-triggered":
            summary = f"{data['severity']} {data['type']}: {data['message']}"
        else:
            summary = str(data)[:80]
        print(f"  <- {event.event:<20s} {summary}")


async def main() -> None:
    hub = BroadcastHub(settings=SimulatorSettings(seed=1), tick_interval_s=0.5)
    client = QueueSubscriber(name="browser-1")

    await hub.subscribe(client)
    consumer = asyncio.create_task(_consume(client))

    await asyncio.sleep(1.2)
    print("\n  -> simulate-door-opening CO-PREM-001")
    print("    ", await hub.dispatch("simulate-door-opening", {"deviceId": "CO-PREM-001"}))

    print("\n  -> device-command toggle_status CO-STD-002")
    print("    ", await hub.dispatch("device-command", {"deviceId": "CO-STD-002", "action": "toggle_status"}))

    print("\n  -> tighten battery thresholds")
    await hub.update_thresholds({"battery": {"min": 99.9, "critical": 10.0}})
    await asyncio.sleep(1.0)

    print(f"\n  Alert statistics: {hub.alert_statistics()}")

    # Last subscriber leaving stops the tick driver.
    await hub.unsubscribe(client)
    with contextlib.suppress(asyncio.CancelledError):
        await consumer
    print(f"  Driver running after unsubscribe: {hub.running}")


if __name__ == "__main__":
    asyncio.run(main())
