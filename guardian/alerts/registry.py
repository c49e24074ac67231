"""Bounded, most-recent-first log of alerts."""

import threading
from collections import deque
from typing import Deque, List, Optional

from .types import AlertEvent


class AlertRegistry:
    """
    Most-recent-first alert log capped at a fixed capacity.

    The oldest alert is evicted when a new one would exceed the cap.
    """

    DEFAULT_CAPACITY = 100

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self._capacity = max(1, int(capacity))
        self._alerts: Deque[AlertEvent] = deque()
        self._lock = threading.RLock()

    def add(self, alert: AlertEvent) -> List[AlertEvent]:
        """
        Prepend an alert.

        Returns:
            Alerts evicted from the tail to stay within capacity
        """
        with self._lock:
            self._alerts.appendleft(alert)
            evicted = []
            while len(self._alerts) > self._capacity:
                evicted.append(self._alerts.pop())
            return evicted

    def get(self, alert_id: str) -> Optional[AlertEvent]:
        with self._lock:
            for alert in self._alerts:
                if alert.id == alert_id:
                    return alert
        return None

    def recent(self, limit: Optional[int] = None) -> List[AlertEvent]:
        """Alerts newest first, optionally limited."""
        with self._lock:
            alerts = list(self._alerts)
        return alerts if limit is None else alerts[:max(0, limit)]

    def unacknowledged(self) -> List[AlertEvent]:
        with self._lock:
            return [a for a in self._alerts if not a.acknowledged]

    def acknowledge(self, alert_id: str, at: float) -> Optional[AlertEvent]:
        """
        Mark an alert acknowledged.

        Returns:
            The alert if its state changed, None for unknown or already
            acknowledged ids
        """
        with self._lock:
            alert = self.get(alert_id)
            if alert is None or alert.acknowledged:
                return None
            alert.acknowledged = True
            alert.acknowledged_at = at
            return alert

    def acknowledge_all(self, at: float) -> List[AlertEvent]:
        """Acknowledge every unacknowledged alert; returns the ones changed."""
        with self._lock:
            changed = []
            for alert in self._alerts:
                if not alert.acknowledged:
                    alert.acknowledged = True
                    alert.acknowledged_at = at
                    changed.append(alert)
            return changed

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)
