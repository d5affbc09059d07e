"""Tests for incubator_sim.subscribers - queue, callback and console subscribers."""

from __future__ import annotations

import io
import json

import pytest

from incubator_sim.models import HubEvent
from incubator_sim.subscribers import (
    ALERT_TRIGGERED,
    BATCH,
    DEVICE_STATUS,
    INITIAL_DATA,
    CallbackSubscriber,
    ConsoleSubscriber,
    QueueSubscriber,
)

_READING = {
    "device_id": "CO-RES-001",
    "temperature": 37.02,
    "co2": 5.01,
    "humidity": 85.3,
    "battery": 99.9,
    "oxygen": 20.1,
    "anomaly": None,
    "timestamp": 1.0,
}


def _event(name: str = BATCH, data=None) -> HubEvent:
    return HubEvent(event=name, data=data if data is not None else [_READING])


class TestSubscriberIds:
    def test_ids_unique_and_names_default(self) -> None:
        a, b = QueueSubscriber(), QueueSubscriber(name="ws-1")
        assert a.id != b.id
        assert a.name.startswith("QueueSubscriber-")
        assert b.name == "ws-1"


class TestQueueSubscriber:
    """Bounded queue handed to a transport."""

    @pytest.mark.asyncio
    async def test_send_and_get(self) -> None:
        sub = QueueSubscriber()
        event = _event()
        await sub.send(event)
        assert await sub.get() is event

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self) -> None:
        sub = QueueSubscriber(maxsize=2)
        events = [_event(data=[{**_READING, "timestamp": float(i)}]) for i in range(3)]
        for event in events:
            await sub.send(event)
        assert sub.dropped == 1
        assert await sub.get() is events[1]
        assert await sub.get() is events[2]

    @pytest.mark.asyncio
    async def test_close_ends_iteration(self) -> None:
        sub = QueueSubscriber()
        await sub.send(_event())
        await sub.close()
        received = [event async for event in sub]
        assert len(received) == 1
        assert sub.closed

    @pytest.mark.asyncio
    async def test_send_after_close_ignored(self) -> None:
        sub = QueueSubscriber()
        await sub.close()
        await sub.send(_event())
        assert await sub.get() is None
        assert sub.queue.empty()


class TestCallbackSubscriber:
    @pytest.mark.asyncio
    async def test_sync_callback(self) -> None:
        received: list[HubEvent] = []
        sub = CallbackSubscriber(received.append)
        await sub.send(_event())
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_async_callback(self) -> None:
        received: list[HubEvent] = []

        async def _cb(event: HubEvent) -> None:
            received.append(event)

        await CallbackSubscriber(_cb).send(_event())
        assert received[0].event == BATCH


class TestConsoleSubscriber:
    """Text and JSON rendering."""

    @pytest.mark.asyncio
    async def test_text_batch(self) -> None:
        buf = io.StringIO()
        await ConsoleSubscriber(stream=buf).send(_event())
        out = buf.getvalue()
        assert "CO-RES-001" in out
        assert "T= 37.02" in out
        assert "O2=20.10%" in out

    @pytest.mark.asyncio
    async def test_text_alert_and_status(self) -> None:
        buf = io.StringIO()
        sub = ConsoleSubscriber(stream=buf)
        await sub.send(
            _event(ALERT_TRIGGERED, {"severity": "CRITICAL", "type": "TEMPERATURE_CRITICAL", "message": "hot"})
        )
        await sub.send(_event(DEVICE_STATUS, {"device_id": "CO-STD-001", "status": "offline"}))
        await sub.send(_event(INITIAL_DATA, {"devices": [{}, {}]}))
        lines = buf.getvalue().splitlines()
        assert "TEMPERATURE_CRITICAL" in lines[0] and "hot" in lines[0]
        assert lines[1] == "** CO-STD-001 is now offline"
        assert lines[2] == "== fleet of 2 devices"

    @pytest.mark.asyncio
    async def test_json(self) -> None:
        buf = io.StringIO()
        await ConsoleSubscriber(fmt="json", stream=buf).send(_event())
        parsed = json.loads(buf.getvalue().strip())
        assert parsed["event"] == BATCH
        assert parsed["data"][0]["device_id"] == "CO-RES-001"
