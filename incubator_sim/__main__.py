"""CLI entry point for the Incubator Fleet Simulator.

Usage::

    incubator-sim run --duration 30
    incubator-sim run --interval 1 --seed 42 -s file -o ./data
    incubator-sim run --config fleet.yaml
    incubator-sim list-devices
    incubator-sim list-sinks
    incubator-sim show-thresholds
    incubator-sim init-config --output fleet.yaml
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap

# ---------------------------------------------------------------------------
# Extras mapping for list-sinks display
# ---------------------------------------------------------------------------
_SINK_EXTRAS: dict[str, str | None] = {
    "console": None,
    "callback": None,
    "file": "file",
    "database": "database",
    "webhook": "webhook",
}

# ---------------------------------------------------------------------------
# Sample YAML config template for init-config
# ---------------------------------------------------------------------------
_SAMPLE_CONFIG = """\
# Incubator Fleet Simulator configuration

simulator:
  tick_interval_s: 5.0                # seconds between fleet ticks
  anomaly_probability: 0.05           # chance of an injected anomaly per reading
  offline_probability: 0.001          # chance per tick that a device drops out
  recovery_probability: 0.1           # chance per tick that it comes back
  battery_degradation_rate: 0.001     # fraction of max battery lost per reading
  door_recovery_steps: 5              # ticks a device stays "recovering"
  history_capacity: 100               # readings kept per device
  # seed: 42                          # reproducible runs
  # duration_s: 60                    # optional: auto-stop after N seconds
  # log_level: INFO                   # DEBUG, INFO, WARNING, ERROR

# The fleet. Omit this section to get the six-device demo fleet.
devices:
  - id: CO-STD-001
    device_class: Standard            # Standard, Premium or Research
  - id: CO-PREM-001
    device_class: Premium
  - id: CO-RES-001
    device_class: Research            # Research devices also report oxygen
    name: Lab 3 research incubator

alerts:
  ledger_capacity: 100
  # Overrides replace whole metric entries.
  thresholds:
    temperature: {min: 36.5, max: 37.5, critical: {min: 36.0, max: 38.0}}
    # battery: {min: 20.0, critical: 10.0}

# Sinks persist readings and alerts. Each has independent throughput control.
sinks:
  - type: file
    path: ./output
    format: csv                       # csv, json, or parquet
    # rotation: 1h                    # rotate files: 30s, 5m, 1h, 1d
    rate_hz: 1.0
    batch_size: 500

  # - type: database
  #   connection_string: sqlite+aiosqlite:///cultureon.db
  #   readings_table: sensor_readings
  #   alerts_table: alerts
  #   rate_hz: 1.0
  #   batch_size: 200

  # - type: webhook
  #   url: https://example.com/ingest
  #   alerts_url: https://example.com/alerts   # optional: alerts posted separately
  #   rate_hz: 0.5
  #   batch_size: 100
  #   headers:
  #     Authorization: Bearer my-token
"""


# ======================================================================
# Main entry point
# ======================================================================


def main(argv: list[str] | None = None) -> None:
    epilog = textwrap.dedent("""\
        examples:
          incubator-sim run --duration 30
          incubator-sim run --interval 1 --seed 42 -s file -o ./data --output-format csv
          incubator-sim run --config fleet.yaml
          incubator-sim list-devices
          incubator-sim list-sinks
          incubator-sim show-thresholds
          incubator-sim init-config --output fleet.yaml
    """)

    parser = argparse.ArgumentParser(
        prog="incubator-sim",
        description="Simulate a fleet of CO2 incubators, raise alerts, and stream both.",
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", title="commands")

    # -- run ---------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        help="Run the fleet simulation and stream events to the console.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              incubator-sim run --duration 30
              incubator-sim run --interval 1 -s file -o ./data
              incubator-sim run --config fleet.yaml --duration 120
        """),
    )
    run_parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to YAML config file. When set, --sink/--output-* flags are ignored.",
    )
    run_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between ticks (default: 5.0, or the config value).",
    )
    run_parser.add_argument(
        "--duration",
        "-d",
        type=float,
        default=None,
        help="Run duration in seconds (default: indefinite, Ctrl-C to stop).",
    )
    run_parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed the simulator's random source for reproducible runs.",
    )
    run_parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO).",
    )
    run_parser.add_argument(
        "--format",
        type=str,
        default="text",
        choices=["text", "json"],
        help="Console event output format (default: text).",
    )
    # Persistence selection (without --config)
    run_parser.add_argument(
        "--sink",
        "-s",
        action="append",
        dest="sinks",
        choices=["file", "database"],
        help="Persistence sink(s) to enable (repeatable). Default: none.",
    )
    run_parser.add_argument(
        "--output-dir",
        "-o",
        type=str,
        default="./output",
        help="Output directory for the file sink (default: ./output).",
    )
    run_parser.add_argument(
        "--output-format",
        type=str,
        default="csv",
        choices=["csv", "json", "parquet"],
        help="File sink format (default: csv).",
    )
    run_parser.add_argument(
        "--rotation",
        type=str,
        default=None,
        help="File rotation interval, e.g. 1h, 30m, 60s (default: none).",
    )
    run_parser.add_argument(
        "--db-url",
        type=str,
        default="sqlite+aiosqlite:///cultureon.db",
        help="Connection string for the database sink.",
    )

    # -- list-devices ------------------------------------------------------
    devices_parser = subparsers.add_parser(
        "list-devices",
        help="List the configured fleet (the demo fleet without --config).",
    )
    devices_parser.add_argument("--config", "-c", type=str, default=None, help="Path to YAML config file.")

    # -- list-sinks --------------------------------------------------------
    subparsers.add_parser(
        "list-sinks",
        help="List all available sink types and install instructions.",
    )

    # -- show-thresholds ---------------------------------------------------
    thresholds_parser = subparsers.add_parser(
        "show-thresholds",
        help="Print the effective alert threshold table as JSON.",
    )
    thresholds_parser.add_argument("--config", "-c", type=str, default=None, help="Path to YAML config file.")

    # -- init-config -------------------------------------------------------
    init_parser = subparsers.add_parser(
        "init-config",
        help="Generate a sample YAML configuration file.",
    )
    init_parser.add_argument(
        "--output",
        "-o",
        type=str,
        default=None,
        help="Write config to this file instead of stdout.",
    )

    # -- Implicit run --------------------------------------------------------
    # A leading flag (e.g. --duration, --config) implies run.
    _known_commands = {"run", "list-devices", "list-sinks", "show-thresholds", "init-config"}
    raw_args = argv if argv is not None else sys.argv[1:]
    if raw_args and raw_args[0] not in _known_commands and raw_args[0] not in ("-h", "--help"):
        raw_args = ["run", *list(raw_args)]

    args = parser.parse_args(raw_args)

    if args.command is None:
        parser.print_help()
        return

    # -- Dispatch ----------------------------------------------------------
    if args.command == "run":
        _cmd_run(args)
    elif args.command == "list-devices":
        _cmd_list_devices(args.config)
    elif args.command == "list-sinks":
        _cmd_list_sinks()
    elif args.command == "show-thresholds":
        _cmd_show_thresholds(args.config)
    elif args.command == "init-config":
        _cmd_init_config(args.output)
    else:
        parser.print_help()


# ======================================================================
# Command implementations
# ======================================================================


def _cmd_run(args: argparse.Namespace) -> None:
    """Execute the simulation."""
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(name)-30s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )

    from incubator_sim.config import FleetConfig, load_yaml_config

    if args.config:
        cfg = load_yaml_config(args.config)
        logging.getLogger().setLevel(getattr(logging, cfg.log_level, logging.INFO))
    else:
        cfg = FleetConfig(sink_configs=_quick_sink_configs(args))

    overrides: dict[str, object] = {}
    if args.interval is not None:
        overrides["tick_interval_s"] = args.interval
    if args.seed is not None:
        overrides["seed"] = args.seed
    if overrides:
        cfg = cfg.model_copy(update={"simulator": cfg.simulator.model_copy(update=overrides)})

    _run_hub(cfg, duration=args.duration if args.duration is not None else cfg.duration_s, console_fmt=args.format)


def _quick_sink_configs(args: argparse.Namespace) -> list[dict[str, object]]:
    """Sink configs for the CLI-only mode (no YAML)."""
    configs: list[dict[str, object]] = []
    for name in args.sinks or []:
        if name == "file":
            configs.append(
                {
                    "type": "file",
                    "path": args.output_dir,
                    "format": args.output_format,
                    "rotation": args.rotation,
                    "rate_hz": 1.0,
                    "batch_size": 500,
                }
            )
        elif name == "database":
            configs.append({"type": "database", "connection_string": args.db_url, "rate_hz": 1.0})
    return configs


def _run_hub(cfg, duration: float | None, console_fmt: str) -> None:
    from incubator_sim.hub import BroadcastHub
    from incubator_sim.subscribers import ConsoleSubscriber

    hub = BroadcastHub.from_config(cfg)
    hub.run(duration_s=duration, subscribers=[ConsoleSubscriber(fmt=console_fmt)])


# -- list-devices ----------------------------------------------------------


def _load_or_default(config_path: str | None):
    from incubator_sim.config import FleetConfig, load_yaml_config

    return load_yaml_config(config_path) if config_path else FleetConfig()


def _cmd_list_devices(config_path: str | None) -> None:
    from incubator_sim.device_models import get_profile

    cfg = _load_or_default(config_path)
    print(f"\n{'Device':<16} {'Class':<10} {'Metrics':<36} {'Max battery':>11}")
    print("-" * 76)
    for spec in cfg.devices:
        profile = get_profile(spec.device_class)
        metrics = ", ".join(m.value for m in profile.metrics)
        print(f"{spec.id:<16} {profile.device_class.value:<10} {metrics:<36} {profile.max_battery:>11.0f}")
    print("-" * 76)
    print(f"{'TOTAL':<16} {len(cfg.devices)}")
    print()


# -- list-sinks ------------------------------------------------------------


def _cmd_list_sinks() -> None:
    from incubator_sim.sinks.factory import available_sinks

    print(f"\n{'Sink Type':<14} {'Class':<20} {'Install Extra'}")
    print("-" * 62)
    for name, class_name in available_sinks().items():
        extra = _SINK_EXTRAS.get(name)
        extra_str = "(built-in)" if extra is None else f"pip install incubator-fleet-simulator[{extra}]"
        print(f"{name:<14} {class_name:<20} {extra_str}")
    print()


# -- show-thresholds --------------------------------------------------------


def _cmd_show_thresholds(config_path: str | None) -> None:
    cfg = _load_or_default(config_path)
    print(json.dumps(cfg.thresholds.model_dump(), indent=2))


# -- init-config ------------------------------------------------------------


def _cmd_init_config(output_path: str | None) -> None:
    if output_path:
        from pathlib import Path

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_text(_SAMPLE_CONFIG)
        print(f"Sample config written to {output_path}")
    else:
        print(_SAMPLE_CONFIG)


# ======================================================================
if __name__ == "__main__":
    main()
