"""Broadcast hub - top-level orchestrator that owns the tick driver, fans
readings and alerts out to subscribers, and hands them to persistence sinks.

The periodic driver only runs while at least one subscriber is attached:
the first ``subscribe()`` starts it and the last ``unsubscribe()`` stops it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import threading
from collections.abc import Callable, Iterable
from typing import Any

from incubator_sim.alerts import DOOR_OPENED, AlertEvaluator, ThresholdTable
from incubator_sim.config import DeviceSpec, FleetConfig, SimulatorSettings
from incubator_sim.device_models import DEFAULT_FLEET
from incubator_sim.generator import TelemetrySimulator
from incubator_sim.ledger import AlertLedger
from incubator_sim.models import (
    Alert,
    CommandResult,
    HubEvent,
    Reading,
    Severity,
    StatusChange,
    TelemetryRecord,
)
from incubator_sim.sinks.base import Sink, SinkRunner
from incubator_sim.sinks.callback import CallbackSink
from incubator_sim.subscribers import (
    ALERT_TRIGGERED,
    ALERTS_CLEARED,
    BATCH,
    DEVICE_STATUS,
    INITIAL_DATA,
    SENSOR_DATA,
    THRESHOLDS_UPDATED,
    Subscriber,
)

__all__ = ["BroadcastHub"]

logger = logging.getLogger("incubator_sim.hub")


class BroadcastHub:
    """High-level API: simulate the fleet, raise alerts, broadcast both.

    Example::

        from incubator_sim import BroadcastHub
        from incubator_sim.subscribers import ConsoleSubscriber

        hub = BroadcastHub(tick_interval_s=1.0)
        hub.run(duration_s=10, subscribers=[ConsoleSubscriber()])

    Parameters:
        simulator:
            Device registry and telemetry generator.  Built from
            *devices* / *settings* when omitted.
        evaluator:
            Threshold evaluator (default thresholds when omitted).
        ledger:
            In-memory alert ledger (capacity 100 when omitted).
        devices:
            Fleet definition used when *simulator* is omitted; defaults to
            the six-device demo fleet.
        settings:
            Simulator settings used when *simulator* is omitted.
        tick_interval_s:
            Seconds between ticks; defaults to ``settings.tick_interval_s``.
        snapshot_history:
            Readings per device included in ``initial-data`` snapshots.
    """

    def __init__(
        self,
        simulator: TelemetrySimulator | None = None,
        *,
        evaluator: AlertEvaluator | None = None,
        ledger: AlertLedger | None = None,
        devices: list[DeviceSpec] | None = None,
        settings: SimulatorSettings | None = None,
        tick_interval_s: float | None = None,
        snapshot_history: int = 20,
    ) -> None:
        if simulator is None:
            if devices is None:
                devices = [DeviceSpec(id=device_id, device_class=cls) for device_id, cls in DEFAULT_FLEET]
            simulator = TelemetrySimulator(devices, settings=settings)
        simulator.on_status_change = self._on_status_change

        self.simulator = simulator
        self.evaluator = evaluator or AlertEvaluator()
        self.ledger = ledger or AlertLedger()
        self.tick_interval_s = tick_interval_s or simulator.settings.tick_interval_s
        self.snapshot_history = snapshot_history
        self.tick_count = 0

        self._subscribers: dict[int, Subscriber] = {}
        self._runners: list[SinkRunner] = []
        self._pending: list[HubEvent] = []
        self._driver: asyncio.Task[None] | None = None
        self._open = False

    @classmethod
    def from_config(cls, config: FleetConfig) -> BroadcastHub:
        """Build a hub (and its sinks) from a loaded :class:`FleetConfig`."""
        from incubator_sim.sinks.factory import create_sink

        hub = cls(
            TelemetrySimulator(config.devices, settings=config.simulator),
            evaluator=AlertEvaluator(config.thresholds),
            ledger=AlertLedger(config.ledger_capacity),
            snapshot_history=config.snapshot_history,
        )
        for sink_dict in config.sink_configs:
            hub.add_sink(create_sink(sink_dict))
        return hub

    # ------------------------------------------------------------------
    # Sink management
    # ------------------------------------------------------------------

    def add_sink(
        self,
        sink: Sink | Callable[[list[TelemetryRecord]], Any],
        *,
        rate_hz: float | None = None,
        batch_size: int | None = None,
    ) -> None:
        """Register a persistence sink (or callable) for readings and alerts.

        Parameters:
            sink:
                A :class:`Sink` instance **or** any callable that accepts
                ``list[Reading | Alert]``.
            rate_hz:
                Override the sink's ``rate_hz``.
            batch_size:
                Override the sink's ``batch_size``.
        """
        if not isinstance(sink, Sink):
            sink = CallbackSink(sink, rate_hz=rate_hz, batch_size=batch_size or 100)
        else:
            if rate_hz is not None:
                sink.sink_config.rate_hz = rate_hz
            if batch_size is not None:
                sink.sink_config.batch_size = batch_size

        self._runners.append(SinkRunner(sink))

    async def open(self) -> None:
        """Connect all sinks and start their drain loops."""
        if self._open:
            return
        for runner in self._runners:
            await runner.start()
        self._open = True
        logger.info(
            "Hub open: %d devices, %d sinks, tick every %.1fs",
            self.simulator.device_count,
            len(self._runners),
            self.tick_interval_s,
        )

    async def close(self) -> None:
        """Stop the driver, drop every subscriber, drain and close sinks."""
        await self.stop_driver()
        for subscriber in list(self._subscribers.values()):
            await self.unsubscribe(subscriber)
        if self._open:
            logger.info("Stopping %d sink runners...", len(self._runners))
            for runner in self._runners:
                await runner.stop()
            self._open = False

    async def __aenter__(self) -> BroadcastHub:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Subscribers and driver gating
    # ------------------------------------------------------------------

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def running(self) -> bool:
        """``True`` while the tick driver task is alive."""
        return self._driver is not None and not self._driver.done()

    async def subscribe(self, subscriber: Subscriber) -> None:
        """Attach *subscriber*, send it a snapshot, start the driver on 0 -> 1."""
        if subscriber.id in self._subscribers:
            return
        self._subscribers[subscriber.id] = subscriber
        logger.info("Subscriber %s joined (%d total)", subscriber.name, self.subscriber_count)
        if self.subscriber_count == 1:
            self.start_driver()
        await self._send(subscriber, HubEvent(event=INITIAL_DATA, data=self.snapshot()))

    async def unsubscribe(self, subscriber: Subscriber) -> None:
        """Detach *subscriber*; stops the driver on 1 -> 0.  Unknown handles are ignored."""
        if self._subscribers.pop(subscriber.id, None) is None:
            return
        logger.info("Subscriber %s left (%d remaining)", subscriber.name, self.subscriber_count)
        try:
            await subscriber.close()
        except Exception as exc:
            logger.warning("Subscriber %s failed to close: %s", subscriber.name, exc)
        if not self._subscribers:
            await self.stop_driver()

    def start_driver(self) -> None:
        """Start the periodic tick task (no-op if already running)."""
        if self.running:
            return
        self._driver = asyncio.create_task(self._drive(), name="tick-driver")
        logger.info("Tick driver started (every %.1fs)", self.tick_interval_s)

    async def stop_driver(self) -> None:
        """Cancel the tick task immediately; calling it when stopped is a no-op."""
        task, self._driver = self._driver, None
        if task is None or task.done():
            return
        task.cancel()
        if task is asyncio.current_task():
            # Last subscriber dropped from inside a tick.
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Tick driver stopped after %d ticks", self.tick_count)

    async def _drive(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            while True:
                tick_start = loop.time()
                try:
                    await self.tick()
                except Exception:
                    logger.exception("Tick %d failed", self.tick_count)

                sleep_time = max(0.0, self.tick_interval_s - (loop.time() - tick_start))
                await asyncio.sleep(sleep_time)
        except asyncio.CancelledError:
            logger.debug("Tick driver cancelled")

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def tick(self) -> list[Reading]:
        """Run one simulation step for the whole fleet and broadcast it.

        Returns the readings produced (offline devices are skipped).
        """
        self.tick_count += 1
        thresholds = self.evaluator.thresholds
        readings = self.simulator.tick()
        alerts: list[Alert] = []
        for reading in readings:
            alerts.extend(self._record_alert(alert) for alert in self.evaluator.evaluate(reading, thresholds))

        self._persist([*readings, *alerts])

        events = self._take_pending()
        if readings:
            events.append(HubEvent(event=BATCH, data=[r.to_dict() for r in readings]))
        events.extend(HubEvent(event=ALERT_TRIGGERED, data=a.to_dict()) for a in alerts)
        for event in events:
            await self._broadcast(event)

        if self.tick_count % 100 == 0:
            logger.debug("Tick %d - %d readings, %d alerts", self.tick_count, len(readings), len(alerts))
        return readings

    # ------------------------------------------------------------------
    # Directed commands
    # ------------------------------------------------------------------

    async def simulate_door_opening(self, device_id: str) -> CommandResult:
        """Inject a door-opening spike and broadcast it with a DOOR_OPENED alert."""
        device = self.simulator.get_device(device_id)
        if device is None:
            return CommandResult(success=False, message="Device not found")

        reading = self.simulator.simulate_door_opening(device_id)
        if reading is None:
            return CommandResult(success=False, message="Device is offline")

        alert = self._record_alert(
            Alert(
                device_id=device_id,
                type=DOOR_OPENED,
                message=f"Temperature spike detected on {device_id} - possible door opening",
                severity=Severity.WARNING,
                value=reading.temperature,
            )
        )
        self._persist([reading, alert])
        await self._broadcast(HubEvent(event=SENSOR_DATA, data=reading.to_dict()))
        await self._broadcast(HubEvent(event=ALERT_TRIGGERED, data=alert.to_dict()))
        return CommandResult(success=True, message="Door opening simulated")

    async def handle_command(self, command: dict[str, Any]) -> CommandResult:
        """Apply ``{"deviceId", "action", "params"}`` to a device.

        Supported actions: ``reset_battery``, ``toggle_status``,
        ``calibrate``.  Problems are reported in the result, never raised.
        """
        device_id = command.get("deviceId", command.get("device_id"))
        action = command.get("action")
        logger.info("Device command received: %s on %s", action, device_id)

        if device_id is None or self.simulator.get_device(str(device_id)) is None:
            return CommandResult(success=False, message="Device not found")

        handlers: dict[str, Callable[[str], CommandResult]] = {
            "reset_battery": self.simulator.reset_battery,
            "toggle_status": self.simulator.toggle_status,
            "calibrate": self.simulator.calibrate,
        }
        handler = handlers.get(str(action))
        if handler is None:
            return CommandResult(success=False, message="Unknown command")

        result = handler(str(device_id))
        for event in self._take_pending():
            await self._broadcast(event)
        return result

    async def dispatch(self, event: str, payload: Any) -> CommandResult:
        """Route an inbound transport message to the matching command."""
        if event == "simulate-door-opening":
            device_id = payload.get("deviceId") if isinstance(payload, dict) else payload
            logger.info("Door opening simulation requested for device: %s", device_id)
            return await self.simulate_door_opening(str(device_id))
        if event == "device-command":
            if not isinstance(payload, dict):
                return CommandResult(success=False, message="Malformed command")
            return await self.handle_command(payload)
        logger.warning("Ignoring unknown inbound event '%s'", event)
        return CommandResult(success=False, message=f"Unknown event: {event}")

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """Current state of every device, used to initialise new subscribers."""
        return {"devices": self.simulator.snapshot(self.snapshot_history)}

    def device_summary(self, device_id: str) -> dict[str, Any] | None:
        device = self.simulator.get_device(device_id)
        return device.summary() if device is not None else None

    def recent_alerts(self, limit: int = 20) -> list[Alert]:
        return self.ledger.recent(limit)

    def alerts_by_device(self, device_id: str, limit: int = 10) -> list[Alert]:
        return self.ledger.by_device(device_id, limit)

    def alert_statistics(self) -> dict[str, Any]:
        return self.ledger.statistics()

    def acknowledge(self, alert_id: str) -> bool:
        return self.ledger.acknowledge(alert_id)

    def acknowledge_many(self, alert_ids: Iterable[str]) -> list[str]:
        return self.ledger.acknowledge_many(alert_ids)

    async def clear_alerts(self, device_id: str | None = None) -> int:
        removed = self.ledger.clear(device_id)
        await self._broadcast(HubEvent(event=ALERTS_CLEARED, data={"device_id": device_id}))
        return removed

    async def update_thresholds(self, partial: dict[str, Any]) -> ThresholdTable:
        """Apply per-metric threshold overrides and broadcast the full table."""
        table = self.evaluator.update(partial)
        await self._broadcast(HubEvent(event=THRESHOLDS_UPDATED, data=table.model_dump()))
        return table

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, duration_s: float | None = None, subscribers: Iterable[Subscriber] | None = None) -> None:
        """Blocking entry point - starts the event loop.

        Works inside environments that already have a running event loop
        (Jupyter, IPython) by spawning a dedicated background thread with
        its own loop.

        Parameters:
            duration_s: Stop automatically after this many seconds.
                        ``None`` means run until Ctrl-C.
            subscribers: Subscribers to attach for the run.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None and loop.is_running():
            exc: list[BaseException | None] = [None]

            def _target() -> None:
                try:
                    asyncio.run(self.run_async(duration_s=duration_s, subscribers=subscribers))
                except KeyboardInterrupt:
                    logger.info("Interrupted by user")
                except BaseException as e:
                    exc[0] = e

            t = threading.Thread(target=_target, daemon=True)
            t.start()
            t.join()
            if exc[0] is not None:
                raise exc[0]
        else:
            try:
                asyncio.run(self.run_async(duration_s=duration_s, subscribers=subscribers))
            except KeyboardInterrupt:
                logger.info("Interrupted by user")

    async def run_async(
        self,
        duration_s: float | None = None,
        subscribers: Iterable[Subscriber] | None = None,
    ) -> None:
        """Async entry point - runs inside an existing event loop."""
        subscribers = list(subscribers or [])
        if not subscribers and not self._subscribers:
            logger.warning("No subscribers - the tick driver would never start. Pass subscribers=[...].")
            return

        # NotImplementedError: Windows. RuntimeError: not the main thread.
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, stop_event.set)

        await self.open()
        try:
            for subscriber in subscribers:
                await self.subscribe(subscriber)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=duration_s)
                logger.info("Stop signal received - shutting down")
            except asyncio.TimeoutError:
                logger.info("Duration reached (%.1fs) - stopping", duration_s)
        except asyncio.CancelledError:
            logger.info("Hub cancelled")
        finally:
            await self.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _on_status_change(self, change: StatusChange) -> None:
        self._pending.append(HubEvent(event=DEVICE_STATUS, data=change.model_dump(mode="json")))

    def _take_pending(self) -> list[HubEvent]:
        events, self._pending = self._pending, []
        return events

    def _record_alert(self, alert: Alert) -> Alert:
        stored = self.ledger.append(alert)
        if stored.severity == Severity.CRITICAL:
            logger.error("CRITICAL ALERT: %s", stored.message)
        return stored

    def _persist(self, records: list[TelemetryRecord]) -> None:
        for runner in self._runners:
            runner.enqueue(records)

    async def _send(self, subscriber: Subscriber, event: HubEvent) -> None:
        try:
            await subscriber.send(event)
        except Exception as exc:
            logger.warning("Dropping subscriber %s after failed send: %s", subscriber.name, exc)
            await self.unsubscribe(subscriber)

    async def _broadcast(self, event: HubEvent) -> None:
        for subscriber in list(self._subscribers.values()):
            await self._send(subscriber, event)
