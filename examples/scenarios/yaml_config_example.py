#!/usr/bin/env python3
"""YAML config-driven example -- load the fleet, thresholds and sinks from a
YAML file and run the hub.

Directly runnable (uses Console + File sinks only).

Usage::

    python examples/scenarios/yaml_config_example.py

Equivalent CLI::

    incubator-sim run --config examples/configs/fleet_config.yaml
"""

from __future__ import annotations

import logging
from pathlib import Path


def main() -> None:
    print("=== YAML Config-Driven Example ===\n")

    config_path = Path(__file__).parent.parent / "configs" / "fleet_config.yaml"
    if not config_path.exists():
        print(f"  Config file not found: {config_path}")
        return

    from incubator_sim.config import load_yaml_config

    cfg = load_yaml_config(config_path)

    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(name)-30s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )

    print(f"  Devices:     {[d.id for d in cfg.devices]}")
    print(f"  Tick:        every {cfg.simulator.tick_interval_s}s")
    print(f"  Humidity:    {cfg.thresholds.humidity.model_dump()}")
    print(f"  Sinks:       {len(cfg.sink_configs)}")
    for i, sc in enumerate(cfg.sink_configs, 1):
        print(f"    Sink {i}: type={sc.get('type')}, rate_hz={sc.get('rate_hz')}, batch_size={sc.get('batch_size')}")
    print()

    from incubator_sim.hub import BroadcastHub
    from incubator_sim.subscribers import ConsoleSubscriber

    hub = BroadcastHub.from_config(cfg)
    hub.run(duration_s=cfg.duration_s, subscribers=[ConsoleSubscriber()])


if __name__ == "__main__":
    main()
