"""Webhook sink - POSTs readings and alerts as JSON over HTTP.

By default every batch goes to one endpoint as
``{"readings": [...], "alerts": [...]}``.  With ``alerts_url`` set, alerts
are posted there on their own (for paging or LIMS hooks) and ``url``
receives readings only.

Requires the ``webhook`` extra::

    pip install incubator-fleet-simulator[webhook]
"""

from __future__ import annotations

import json
import logging
from typing import Any

from incubator_sim.models import TelemetryRecord
from incubator_sim.sinks.base import Sink, split_records

__all__ = ["WebhookSink"]

logger = logging.getLogger("incubator_sim.sinks.webhook")

try:
    import httpx

    HTTPX_AVAILABLE = True
except ImportError:
    HTTPX_AVAILABLE = False


class WebhookSink(Sink):
    """Deliver records to HTTP endpoints.

    Parameters:
        url: Endpoint for readings (and alerts, unless *alerts_url* is set).
        alerts_url: Optional separate endpoint for alerts.
        headers: Extra HTTP headers, e.g. an ``Authorization`` bearer token.
        timeout_s: Per-request timeout in seconds.
        rate_hz / batch_size / **kwargs: Forwarded to :class:`Sink`.

    Non-2xx responses raise, so the runner's retry policy applies.
    """

    def __init__(
        self,
        *,
        url: str,
        alerts_url: str | None = None,
        headers: dict[str, str] | None = None,
        timeout_s: float = 10.0,
        rate_hz: float | None = None,
        batch_size: int = 100,
        **kwargs: Any,
    ) -> None:
        if not HTTPX_AVAILABLE:
            raise ImportError(
                "httpx is required for WebhookSink.  Install with: pip install incubator-fleet-simulator[webhook]"
            )
        super().__init__(rate_hz=rate_hz, batch_size=batch_size, **kwargs)
        self._url = url
        self._alerts_url = alerts_url
        self._headers = {"Content-Type": "application/json", **(headers or {})}
        self._timeout = timeout_s
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout), headers=self._headers)
        if self._alerts_url:
            logger.info("WebhookSink ready - readings: %s, alerts: %s", self._url, self._alerts_url)
        else:
            logger.info("WebhookSink ready - target: %s", self._url)

    async def write(self, records: list[TelemetryRecord]) -> None:
        if self._client is None:
            raise RuntimeError("WebhookSink is not connected")

        readings, alerts = split_records(records)
        reading_rows = [r.to_dict() for r in readings]
        alert_rows = [a.to_dict() for a in alerts]

        if self._alerts_url is None:
            await self._post(self._url, {"readings": reading_rows, "alerts": alert_rows})
            return
        if reading_rows:
            await self._post(self._url, {"readings": reading_rows})
        if alert_rows:
            await self._post(self._alerts_url, {"alerts": alert_rows})

    async def flush(self) -> None:
        """No-op; every write is a completed POST."""

    async def close(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None
        logger.info("WebhookSink closed")

    async def _post(self, url: str, body: dict[str, list[dict[str, Any]]]) -> None:
        resp = await self._client.post(url, content=json.dumps(body))
        resp.raise_for_status()
        logger.debug("POST %s - %s - HTTP %d", url, {k: len(v) for k, v in body.items()}, resp.status_code)
