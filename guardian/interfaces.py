"""
Collaborator interfaces consumed by the alert core.

Persistence and notification are fire-and-forget side effects; settings are
pull-only. Each interface ships a no-op or logging implementation.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from guardian.alerts.types import AlertEvent, Thresholds

logger = logging.getLogger(__name__)


class AlertStore(ABC):
    """Persistence collaborator for alert history."""

    @abstractmethod
    def record_alert(self, alert: AlertEvent) -> None:
        pass

    @abstractmethod
    def update_acknowledgment(self, alert_id: str, acknowledged_at: float) -> None:
        pass


class NullAlertStore(AlertStore):
    """Discards everything."""

    def record_alert(self, alert: AlertEvent) -> None:
        pass

    def update_acknowledgment(self, alert_id: str, acknowledged_at: float) -> None:
        pass


class Notifier(ABC):
    """Push/local notification collaborator."""

    @abstractmethod
    def notify(
        self,
        title: str,
        body: str,
        tag: Optional[str] = None,
        require_interaction: bool = False,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        pass


class NullNotifier(Notifier):
    def notify(self, title, body, tag=None, require_interaction=False, data=None) -> None:
        pass


class LoggingNotifier(Notifier):
    """Writes notifications to the log instead of delivering them."""

    def notify(self, title, body, tag=None, require_interaction=False, data=None) -> None:
        level = logging.WARNING if require_interaction else logging.INFO
        logger.log(level, f"[NOTIFY] {title}: {body} (tag={tag})")


class SettingsProvider(ABC):
    """Pull-only settings source, queried fresh on every evaluation."""

    @abstractmethod
    def get_thresholds(self) -> Thresholds:
        pass

    @abstractmethod
    def get_volume(self) -> float:
        """User volume, 0-100."""
        pass

    @abstractmethod
    def is_muted(self) -> bool:
        pass

    @abstractmethod
    def is_emergency_mode_enabled(self) -> bool:
        pass
