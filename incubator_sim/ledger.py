"""Bounded in-memory record of recently raised alerts."""

from __future__ import annotations

import collections
import logging
import threading
import time
from collections.abc import Iterable
from typing import Any

from incubator_sim.models import Alert, Severity

__all__ = ["AlertLedger"]

logger = logging.getLogger("incubator_sim.ledger")


class AlertLedger:
    """Ring buffer of the most recent alerts.

    The ledger stores its own copies of the alerts it receives; the only
    change made to a stored alert afterwards is acknowledgement.  It is
    independent of any durable store and answers "recent activity" queries.

    Parameters:
        capacity: Maximum number of alerts retained; the oldest is evicted
            on overflow.
    """

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._alerts: collections.deque[Alert] = collections.deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._alerts.maxlen or 0

    def __len__(self) -> int:
        return len(self._alerts)

    def append(self, alert: Alert) -> Alert:
        """Store a copy of *alert* and return a second, detached copy."""
        stored = alert.model_copy(deep=True)
        with self._lock:
            if len(self._alerts) == self._alerts.maxlen:
                logger.debug("Ledger full - evicting %s", self._alerts[0].id)
            self._alerts.append(stored)
        return stored.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Queries (newest first, detached copies)
    # ------------------------------------------------------------------

    def _newest_first(self) -> list[Alert]:
        with self._lock:
            return [a.model_copy(deep=True) for a in reversed(self._alerts)]

    def recent(self, limit: int = 20) -> list[Alert]:
        return self._newest_first()[: max(0, limit)]

    def by_device(self, device_id: str, limit: int = 10) -> list[Alert]:
        matches = [a for a in self._newest_first() if a.device_id == device_id]
        return matches[: max(0, limit)]

    def by_severity(self, severity: Severity | str, limit: int = 100) -> list[Alert]:
        severity = Severity(severity)
        matches = [a for a in self._newest_first() if a.severity == severity]
        return matches[: max(0, limit)]

    def unacknowledged(self) -> list[Alert]:
        return [a for a in self._newest_first() if not a.acknowledged]

    def get(self, alert_id: str) -> Alert | None:
        with self._lock:
            for alert in self._alerts:
                if alert.id == alert_id:
                    return alert.model_copy(deep=True)
        return None

    def statistics(self) -> dict[str, Any]:
        """Counts by severity, type and device over the retained window."""
        stats: dict[str, Any] = {
            "total": 0,
            "critical": 0,
            "warning": 0,
            "info": 0,
            "unacknowledged": 0,
            "by_type": {},
            "by_device": {},
        }
        with self._lock:
            alerts = list(self._alerts)

        for alert in alerts:
            stats["total"] += 1
            if alert.severity == Severity.CRITICAL:
                stats["critical"] += 1
            elif alert.severity == Severity.WARNING:
                stats["warning"] += 1
            else:
                stats["info"] += 1
            if not alert.acknowledged:
                stats["unacknowledged"] += 1
            stats["by_type"][alert.type] = stats["by_type"].get(alert.type, 0) + 1
            stats["by_device"][alert.device_id] = stats["by_device"].get(alert.device_id, 0) + 1
        return stats

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def acknowledge(self, alert_id: str) -> bool:
        """Mark *alert_id* acknowledged.

        Returns ``True`` only if the alert existed and was not yet
        acknowledged; unknown or already-acknowledged ids are a no-op.
        """
        with self._lock:
            for alert in self._alerts:
                if alert.id == alert_id:
                    if alert.acknowledged:
                        return False
                    alert.acknowledged = True
                    alert.acknowledged_at = time.time()
                    return True
        return False

    def acknowledge_many(self, alert_ids: Iterable[str]) -> list[str]:
        """Acknowledge several alerts; returns the ids that changed."""
        return [alert_id for alert_id in alert_ids if self.acknowledge(alert_id)]

    def clear(self, device_id: str | None = None) -> int:
        """Drop all alerts, or only those of *device_id*. Returns the count removed."""
        with self._lock:
            before = len(self._alerts)
            if device_id is None:
                self._alerts.clear()
            else:
                kept = [a for a in self._alerts if a.device_id != device_id]
                self._alerts.clear()
                self._alerts.extend(kept)
            removed = before - len(self._alerts)
        logger.info("Cleared %d alerts (device=%s)", removed, device_id or "all")
        return removed
