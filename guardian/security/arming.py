"""
Intrusion arming state machine.

States: disarmed -> arming (countdown) -> armed -> triggered.
disarm() returns to disarmed from any state.
"""

import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from guardian.alerts.types import AlertType, Severity
from guardian.audio.types import SoundType
from guardian.utils.timing import CancelHandle, Scheduler
from .types import ArmingState, IntrusionFrame, create_intrusion_frame

logger = logging.getLogger(__name__)


class ArmingStateMachine:
    """
    Arms the premises, raises intrusion alerts and drives the siren.

    Features:
    - 1 s countdown tick chain while arming (or an external driver via
      set_arming_time_remaining)
    - Critical intrusion alert through the alert engine (shared cooldown)
    - Looping alarm siren, optionally forced to max volume
    - Bounded FIFO of intrusion evidence frames

    Usage:
        machine = ArmingStateMachine(scheduler, alert_engine, sound_engine)
        machine.arm()
        # ... countdown elapses
        machine.trigger_intrusion(frame_bytes, person_count=2, allowed_count=0)
        machine.disarm()
    """

    TICK_MS = 1000

    def __init__(
        self,
        scheduler: Scheduler,
        alert_engine=None,
        sound_engine=None,
        arming_countdown_s: int = 30,
        trigger_cooldown_s: float = 10.0,
        max_stored_frames: int = 50,
        siren_enabled: bool = True,
        siren_max_volume: bool = True,
        wall_clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            scheduler: Scheduling capability for the countdown tick
            alert_engine: AlertEngine receiving intrusion alerts (optional)
            sound_engine: SoundEngine used for the siren (optional)
            arming_countdown_s: Seconds from arm() to armed
            trigger_cooldown_s: Window in which repeat triggers only add evidence
            max_stored_frames: Evidence FIFO capacity
            siren_enabled: Sound the siren on intrusion
            siren_max_volume: Play the siren ignoring user volume
            wall_clock: Epoch seconds for frame timestamps
        """
        self._scheduler = scheduler
        self._alert_engine = alert_engine
        self._sound_engine = sound_engine
        self.arming_countdown_s = max(0, int(arming_countdown_s))
        self.trigger_cooldown_s = max(0.0, float(trigger_cooldown_s))
        self.siren_enabled = siren_enabled
        self.siren_max_volume = siren_max_volume
        self._wall_clock = wall_clock or time.time

        self._lock = threading.RLock()
        self._state = ArmingState.DISARMED
        self._arming_time_remaining = 0
        self._tick_handle: Optional[CancelHandle] = None
        self._siren_id: Optional[str] = None
        self._last_trigger_at: Optional[float] = None

        self._frames: Deque[IntrusionFrame] = deque(maxlen=max(1, int(max_stored_frames)))
        self._total_intrusion_events = 0
        self._last_intrusion_time: Optional[float] = None

        self._person_count = 0
        self._allowed_count = 0
        self._last_detection_time: Optional[float] = None

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def arm(self) -> bool:
        """
        Start the arming countdown.

        Returns:
            True if the countdown started (from disarmed or armed)
        """
        with self._lock:
            if self._state not in (ArmingState.DISARMED, ArmingState.ARMED):
                return False

            self._cancel_tick()
            self._state = ArmingState.ARMING
            self._arming_time_remaining = self.arming_countdown_s
            if self._arming_time_remaining <= 0:
                self._become_armed()
            else:
                self._tick_handle = self._scheduler.schedule(self.TICK_MS, self._tick)

        logger.info(f"Arming started ({self.arming_countdown_s}s countdown)")
        return True

    def disarm(self) -> None:
        """Return to disarmed from any state and silence the siren."""
        with self._lock:
            previous = self._state
            self._cancel_tick()
            self._state = ArmingState.DISARMED
            self._arming_time_remaining = 0
            self._last_trigger_at = None
            self._stop_siren()

        if previous != ArmingState.DISARMED:
            logger.info(f"Disarmed (was {previous.value})")

    def set_arming_time_remaining(self, seconds: int) -> None:
        """Drive the countdown externally; reaching 0 while arming arms the system."""
        with self._lock:
            if self._state != ArmingState.ARMING:
                return
            self._arming_time_remaining = max(0, int(seconds))
            if self._arming_time_remaining == 0:
                self._cancel_tick()
                self._become_armed()

    def trigger_intrusion(
        self,
        evidence: Any = None,
        person_count: int = 0,
        allowed_count: int = 0,
        detections: Optional[List[Dict[str, Any]]] = None,
    ) -> Optional[IntrusionFrame]:
        """
        Report an intrusion.

        From armed: move to triggered, store the frame, raise a critical
        intrusion alert and start the siren. From triggered within the
        trigger cooldown: store the frame as extra evidence only.

        Returns:
            The stored frame, or None if the trigger had no effect
        """
        with self._lock:
            now = self._scheduler.now()
            if self._state == ArmingState.ARMED:
                accepted = True
            elif (
                self._state == ArmingState.TRIGGERED
                and self._last_trigger_at is not None
                and now - self._last_trigger_at < self.trigger_cooldown_s
            ):
                accepted = False
            else:
                logger.debug(f"Intrusion ignored in state {self._state.value}")
                return None

            frame = create_intrusion_frame(
                evidence,
                person_count,
                allowed_count,
                detections,
                timestamp=self._wall_clock(),
            )
            self._frames.append(frame)

            if accepted:
                self._state = ArmingState.TRIGGERED
                self._last_trigger_at = now
                self._total_intrusion_events += 1
                self._last_intrusion_time = frame.timestamp
                if self.siren_enabled:
                    self._start_siren()

        if not accepted:
            logger.debug(f"Additional intrusion evidence stored: {frame.id}")
            return frame

        logger.warning(
            f"INTRUSION: {frame.person_count} persons ({frame.allowed_count} allowed) - frame {frame.id}"
        )
        if self._alert_engine is not None:
            self._alert_engine.raise_alert(
                AlertType.INTRUSION,
                Severity.CRITICAL,
                metadata={
                    "count": frame.person_count,
                    "allowed": frame.allowed_count,
                    "frame_id": frame.id,
                },
            )
        return frame

    def reset(self) -> None:
        """Disarm and clear runtime counters (evidence frames are kept)."""
        self.disarm()
        with self._lock:
            self._person_count = 0
            self._allowed_count = 0
            self._last_detection_time = None

    def _tick(self) -> None:
        with self._lock:
            if self._state != ArmingState.ARMING:
                return
            self._arming_time_remaining = max(0, self._arming_time_remaining - 1)
            if self._arming_time_remaining == 0:
                self._tick_handle = None
                self._become_armed()
            else:
                self._tick_handle = self._scheduler.schedule(self.TICK_MS, self._tick)

    def _become_armed(self) -> None:
        self._state = ArmingState.ARMED
        self._arming_time_remaining = 0
        logger.info("System armed")

    def _cancel_tick(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _start_siren(self) -> None:
        if self._sound_engine is None:
            return
        if self._siren_id is not None and self._sound_engine.get(self._siren_id) is not None:
            return
        self._siren_id = self._sound_engine.play(
            SoundType.ALARM,
            loop=True,
            force_max_volume=self.siren_max_volume,
        )

    def _stop_siren(self) -> None:
        if self._siren_id is not None and self._sound_engine is not None:
            self._sound_engine.stop(self._siren_id, 0)
        self._siren_id = None

    # -------------------------------------------------------------------------
    # Detection bookkeeping
    # -------------------------------------------------------------------------

    def record_detection(self, count: int, allowed_count: Optional[int] = None) -> int:
        """
        Record the latest person count.

        Returns:
            Persons over the allowed count
        """
        with self._lock:
            self._person_count = max(0, int(count))
            if allowed_count is not None:
                self._allowed_count = max(0, int(allowed_count))
            self._last_detection_time = self._wall_clock()
            return self.person_excess

    @property
    def person_excess(self) -> int:
        return max(0, self._person_count - self._allowed_count)

    @property
    def has_excess(self) -> bool:
        return self.person_excess > 0

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ArmingState:
        return self._state

    @property
    def arming_time_remaining(self) -> int:
        return self._arming_time_remaining

    @property
    def is_armed(self) -> bool:
        """Armed or already triggered."""
        return self._state in (ArmingState.ARMED, ArmingState.TRIGGERED)

    @property
    def is_triggered(self) -> bool:
        return self._state == ArmingState.TRIGGERED

    @property
    def siren_id(self) -> Optional[str]:
        return self._siren_id

    @property
    def total_intrusion_events(self) -> int:
        return self._total_intrusion_events

    @property
    def last_intrusion_time(self) -> Optional[float]:
        return self._last_intrusion_time

    @property
    def person_count(self) -> int:
        return self._person_count

    @property
    def last_detection_time(self) -> Optional[float]:
        return self._last_detection_time

    # -------------------------------------------------------------------------
    # Evidence frames
    # -------------------------------------------------------------------------

    @property
    def frames(self) -> List[IntrusionFrame]:
        """Stored frames, oldest first."""
        with self._lock:
            return list(self._frames)

    def _find_frame(self, frame_id: str) -> Optional[IntrusionFrame]:
        for frame in self._frames:
            if frame.id == frame_id:
                return frame
        return None

    def acknowledge_frame(self, frame_id: str) -> bool:
        with self._lock:
            frame = self._find_frame(frame_id)
            if frame is None:
                return False
            frame.acknowledged = True
            return True

    def remove_frame(self, frame_id: str) -> bool:
        with self._lock:
            frame = self._find_frame(frame_id)
            if frame is None:
                return False
            self._frames.remove(frame)
            return True

    def update_frame_notes(self, frame_id: str, notes: Optional[str]) -> bool:
        with self._lock:
            frame = self._find_frame(frame_id)
            if frame is None:
                return False
            frame.notes = notes
            return True

    def export_frames(self, frame_ids: Optional[Iterable[str]] = None) -> List[IntrusionFrame]:
        """
        Mark frames as exported.

        Args:
            frame_ids: Frames to export (all stored frames when None)

        Returns:
            The frames marked; unknown ids are skipped
        """
        with self._lock:
            if frame_ids is None:
                selected = list(self._frames)
            else:
                wanted = set(frame_ids)
                selected = [f for f in self._frames if f.id in wanted]
            for frame in selected:
                frame.exported = True
            return selected

    def clear_history(self) -> None:
        """Drop all stored evidence frames."""
        with self._lock:
            self._frames.clear()
