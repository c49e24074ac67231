"""
Alert escalation scheduler.

Raises the audible intensity of an unacknowledged alert over time.

Escalation ladder (each level is held for its interval before stepping up):
- Level 0: 10s, notification cue at 30% intensity
- Level 1:  7s, alert cue at 50%
- Level 2:  5s, warning cue at 70%
- Level 3:  3s, alarm cue at 85%
- Level 4:  2s, alarm cue at 100% (top; re-sounded every interval)

Starting level by severity: info 0, warning 1, critical 3, emergency 4.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from guardian.audio.types import SoundType
from guardian.utils.timing import CancelHandle, Scheduler
from .types import AlertEvent, Severity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EscalationLevel:
    """One rung of the escalation ladder."""
    level: int
    interval_ms: int
    intensity: float
    sound_type: SoundType


ESCALATION_LADDER: Tuple[EscalationLevel, ...] = (
    EscalationLevel(level=0, interval_ms=10000, intensity=0.30, sound_type=SoundType.NOTIFICATION),
    EscalationLevel(level=1, interval_ms=7000, intensity=0.50, sound_type=SoundType.ALERT),
    EscalationLevel(level=2, interval_ms=5000, intensity=0.70, sound_type=SoundType.WARNING),
    EscalationLevel(level=3, interval_ms=3000, intensity=0.85, sound_type=SoundType.ALARM),
    EscalationLevel(level=4, interval_ms=2000, intensity=1.00, sound_type=SoundType.ALARM),
)

MAX_LEVEL = len(ESCALATION_LADDER) - 1

SEVERITY_START_LEVEL = {
    Severity.INFO: 0,
    Severity.WARNING: 1,
    Severity.CRITICAL: 3,
    Severity.EMERGENCY: 4,
}


def get_starting_level(severity: Severity) -> int:
    """Escalation level a fresh alert of this severity starts at."""
    return SEVERITY_START_LEVEL[severity]


@dataclass
class EscalationTimer:
    """Live escalation state for one unacknowledged alert."""
    alert_id: str
    current_level: int
    level_started_at: float
    scheduled_at: Optional[float] = None
    cancel_handle: Optional[CancelHandle] = None
    sound_id: Optional[str] = None


class EscalationScheduler:
    """
    Per-alert cancelable timer chains that step up through the ladder.

    Levels never decrease and never exceed the top of the ladder. Canceling
    an alert (acknowledgment) destroys its timer, freezes its level and
    stops only the cue that alert was sounding.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        sound_engine=None,
        ladder: Tuple[EscalationLevel, ...] = ESCALATION_LADDER,
        repeat_at_max: bool = True,
    ):
        """
        Args:
            scheduler: Scheduling capability for ladder steps
            sound_engine: SoundEngine used to sound each level (optional)
            ladder: Ordered escalation levels
            repeat_at_max: Re-sound the top cue every top-level interval
        """
        if not ladder:
            raise ValueError("Escalation ladder must have at least one level")
        self._scheduler = scheduler
        self._sound_engine = sound_engine
        self._ladder = ladder
        self._max_level = len(ladder) - 1
        self._repeat_at_max = repeat_at_max

        self._lock = threading.RLock()
        self._timers: Dict[str, EscalationTimer] = {}
        self._frozen_levels: Dict[str, int] = {}

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, alert: AlertEvent) -> Optional[EscalationTimer]:
        """
        Start escalating an alert.

        Returns:
            The new timer, or None if the alert is acknowledged or already tracked
        """
        with self._lock:
            if alert.acknowledged or alert.id in self._timers or alert.id in self._frozen_levels:
                return None

            level = min(get_starting_level(alert.severity), self._max_level)
            timer = EscalationTimer(
                alert_id=alert.id,
                current_level=level,
                level_started_at=self._scheduler.now(),
            )
            self._timers[alert.id] = timer
            self._sound(timer)
            self._schedule_next(timer)

        logger.info(f"Escalation started for {alert.id} at level {level}")
        return timer

    def cancel(self, alert_id: str) -> bool:
        """
        Stop escalating an alert and freeze its level.

        Returns:
            True if a live escalation was canceled; unknown ids are a no-op
        """
        with self._lock:
            timer = self._timers.pop(alert_id, None)
            if timer is None:
                return False
            self._destroy(timer)
            self._frozen_levels[alert_id] = timer.current_level

        logger.info(f"Escalation for {alert_id} frozen at level {timer.current_level}")
        return True

    def cancel_all(self) -> List[str]:
        """Cancel every live escalation. Returns the canceled alert ids."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
            for timer in timers:
                self._destroy(timer)
                self._frozen_levels[timer.alert_id] = timer.current_level
        return [timer.alert_id for timer in timers]

    def forget(self, alert_id: str) -> None:
        """Drop all state for an alert (used when it leaves the registry)."""
        with self._lock:
            timer = self._timers.pop(alert_id, None)
            if timer is not None:
                self._destroy(timer)
            self._frozen_levels.pop(alert_id, None)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def level_of(self, alert_id: str) -> Optional[int]:
        """Current (live) or frozen (acknowledged) level; None if unknown."""
        with self._lock:
            timer = self._timers.get(alert_id)
            if timer is not None:
                return timer.current_level
            return self._frozen_levels.get(alert_id)

    def is_active(self, alert_id: str) -> bool:
        with self._lock:
            return alert_id in self._timers

    def active_ids(self) -> List[str]:
        with self._lock:
            return list(self._timers)

    def sound_of(self, alert_id: str) -> Optional[str]:
        """Id of the cue currently tied to an alert's escalation."""
        with self._lock:
            timer = self._timers.get(alert_id)
            return timer.sound_id if timer is not None else None

    def volume_for(self, alert_id: str) -> float:
        """
        Intensity interpolated toward the next level by elapsed time.

        Returns:
            Intensity in [0, 1]; 0.0 for unknown or acknowledged alerts
        """
        with self._lock:
            timer = self._timers.get(alert_id)
            if timer is None:
                return 0.0
            current = self._ladder[timer.current_level]
            if timer.current_level >= self._max_level:
                return current.intensity
            following = self._ladder[timer.current_level + 1]
            elapsed_ms = (self._scheduler.now() - timer.level_started_at) * 1000.0
            progress = min(1.0, max(0.0, elapsed_ms / current.interval_ms))
            return current.intensity + (following.intensity - current.intensity) * progress

    def stats(self) -> Dict[str, object]:
        """Count of live escalations, total and per level."""
        with self._lock:
            by_level: Dict[int, int] = {}
            for timer in self._timers.values():
                by_level[timer.current_level] = by_level.get(timer.current_level, 0) + 1
            return {"active": len(self._timers), "by_level": by_level}

    @property
    def max_level(self) -> int:
        return self._max_level

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _schedule_next(self, timer: EscalationTimer) -> None:
        if timer.current_level >= self._max_level and not self._repeat_at_max:
            timer.cancel_handle = None
            timer.scheduled_at = None
            return

        interval_ms = self._ladder[timer.current_level].interval_ms
        timer.scheduled_at = self._scheduler.now() + interval_ms / 1000.0
        alert_id = timer.alert_id
        timer.cancel_handle = self._scheduler.schedule(interval_ms, lambda: self._step(alert_id))

    def _step(self, alert_id: str) -> None:
        with self._lock:
            timer = self._timers.get(alert_id)
            if timer is None:
                return

            if timer.current_level < self._max_level:
                timer.current_level += 1
                timer.level_started_at = self._scheduler.now()
                logger.info(f"Alert {alert_id} escalated to level {timer.current_level}")
            self._sound(timer)
            self._schedule_next(timer)

    def _sound(self, timer: EscalationTimer) -> None:
        """Replace the alert's cue with the one for its current level."""
        if self._sound_engine is None:
            return
        if timer.sound_id is not None:
            self._sound_engine.stop(timer.sound_id, 0)
        step = self._ladder[timer.current_level]
        timer.sound_id = self._sound_engine.play(step.sound_type, loop=False, volume=step.intensity)

    def _destroy(self, timer: EscalationTimer) -> None:
        if timer.cancel_handle is not None:
            timer.cancel_handle.cancel()
            timer.cancel_handle = None
        if timer.sound_id is not None and self._sound_engine is not None:
            self._sound_engine.stop(timer.sound_id, 0)
        timer.sound_id = None
