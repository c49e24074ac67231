"""Inactivity watchdog feeding inactivity alerts into the alert engine."""

import logging
import threading
from typing import Callable, Optional

from guardian.utils.timing import CancelHandle, Scheduler
from .types import AlertEvent, Thresholds

logger = logging.getLogger(__name__)


class InactivityMonitor:
    """
    Raises an inactivity alert when no activity is reported for a while.

    The timeout is read from the thresholds on every (re)arm. While nothing
    resets the monitor it keeps re-checking every timeout period, so the
    reported idle minutes keep growing.
    """

    def __init__(
        self,
        engine,
        scheduler: Scheduler,
        thresholds: Optional[Callable[[], Thresholds]] = None,
    ):
        """
        Args:
            engine: AlertEngine receiving handle_inactivity calls
            scheduler: Scheduling capability for the watchdog timer
            thresholds: Callable returning current thresholds
        """
        self._engine = engine
        self._scheduler = scheduler
        self._thresholds = thresholds or Thresholds
        self._lock = threading.Lock()
        self._handle: Optional[CancelHandle] = None
        self._stream_id: Optional[str] = None
        self._last_activity: Optional[float] = None

    def start(self, stream_id: Optional[str] = None) -> None:
        """Begin watching a stream (restarts the idle clock)."""
        with self._lock:
            self._stream_id = stream_id
            self._last_activity = self._scheduler.now()
            self._arm()
        logger.info(f"Inactivity monitor started for {stream_id or 'default stream'}")

    def reset(self) -> None:
        """Report activity. No-op while stopped."""
        with self._lock:
            if self._last_activity is None:
                return
            self._last_activity = self._scheduler.now()
            self._arm()

    def stop(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
            self._last_activity = None

    @property
    def running(self) -> bool:
        return self._last_activity is not None

    def idle_minutes(self) -> float:
        with self._lock:
            if self._last_activity is None:
                return 0.0
            return (self._scheduler.now() - self._last_activity) / 60.0

    def _timeout_ms(self) -> float:
        minutes = float(self._thresholds().inactivity_timeout_min)
        # Never re-arm faster than once a second
        return max(1000.0, minutes * 60.0 * 1000.0)

    def _arm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._scheduler.schedule(self._timeout_ms(), self._fire)

    def _fire(self) -> Optional[AlertEvent]:
        with self._lock:
            if self._last_activity is None:
                return None
            minutes = (self._scheduler.now() - self._last_activity) / 60.0
            stream_id = self._stream_id
            self._arm()

        logger.debug(f"No activity for {minutes:.1f} min")
        return self._engine.handle_inactivity(minutes, stream_id=stream_id)
