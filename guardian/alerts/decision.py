"""Threshold evaluator - classifies raw detection signals into alerts."""

import logging
import threading
import time
import uuid
from typing import Any, Callable, Dict, Optional, Union

from .types import (
    AlertType,
    AlertEvent,
    Severity,
    Suppressed,
    Thresholds,
    MotionSignal,
    AudioSignal,
    PersonSignal,
    AnimalSignal,
    InactivitySignal,
    SubjectMatchSignal,
    clamp_number,
)
from .templates import render

logger = logging.getLogger(__name__)

EvaluationResult = Union[AlertEvent, Suppressed]

DANGEROUS_LEVELS = ("high", "extreme")
ESCALATING_AUDIO_PATTERNS = ("crying", "scream")


def motion_severity(level: float, threshold: float) -> Severity:
    """Severity from how far a motion level exceeds its threshold."""
    ratio = level / threshold
    if ratio >= 2.0:
        return Severity.EMERGENCY
    if ratio >= 1.5:
        return Severity.CRITICAL
    if ratio >= 1.2:
        return Severity.WARNING
    return Severity.INFO


class ThresholdEvaluator:
    """
    Evaluates detection signals and decides whether an alert fires.

    Features:
    - Exact per-type classification rules
    - Per-type cooldown to prevent alert spam (independent per type)
    - Input clamping instead of raising on out-of-range values

    The cooldown check and record happen under one lock, so two
    near-simultaneous signals of the same type cannot both pass.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        wall_clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            clock: Monotonic seconds used for cooldown windows
            wall_clock: Epoch seconds stamped on created alerts
        """
        self._clock = clock or time.monotonic
        self._wall_clock = wall_clock or time.time
        self._lock = threading.Lock()
        # Track last accepted alert time per type for cooldown
        self._last_alert_time: Dict[AlertType, float] = {}

    def evaluate(
        self,
        alert_type: AlertType,
        signal: Any,
        thresholds: Optional[Thresholds] = None,
    ) -> EvaluationResult:
        """
        Classify a signal into an alert or Suppressed.

        Args:
            alert_type: Input type the signal belongs to
            signal: Type-specific signal dataclass
            thresholds: Current thresholds (defaults when None)

        Returns:
            AlertEvent if the alert fires, Suppressed otherwise

        Raises:
            TypeError: If the signal shape does not match the alert type
            ValueError: If the type has no signal classifier
        """
        thresholds = thresholds or Thresholds()
        classifier = self._classifiers().get(alert_type)
        if classifier is None:
            raise ValueError(f"No signal classifier for alert type {alert_type.value}")

        expected = SIGNAL_TYPES[alert_type]
        if not isinstance(signal, expected):
            raise TypeError(
                f"{alert_type.value} expects {expected.__name__}, got {type(signal).__name__}"
            )

        return classifier(signal, thresholds)

    def raise_alert(
        self,
        alert_type: AlertType,
        severity: Severity,
        thresholds: Optional[Thresholds] = None,
        metadata: Optional[Dict[str, Any]] = None,
        stream_id: Optional[str] = None,
        message: Optional[str] = None,
        description: Optional[str] = None,
    ) -> EvaluationResult:
        """Create an alert of explicit type and severity, subject to cooldown."""
        return self._emit(
            alert_type,
            severity,
            thresholds or Thresholds(),
            metadata=metadata,
            stream_id=stream_id,
            message=message,
            description=description,
        )

    def _classifiers(self) -> Dict[AlertType, Callable[[Any, Thresholds], EvaluationResult]]:
        return {
            AlertType.MOTION: self._evaluate_motion,
            AlertType.AUDIO: self._evaluate_audio,
            AlertType.PERSON: self._evaluate_person,
            AlertType.ANIMAL: self._evaluate_animal,
            AlertType.INACTIVITY: self._evaluate_inactivity,
            AlertType.SUBJECT_MATCH: self._evaluate_subject_match,
        }

    def _evaluate_motion(self, signal: MotionSignal, thresholds: Thresholds) -> EvaluationResult:
        level = clamp_number(signal.level)
        sensitivity = clamp_number(thresholds.motion_sensitivity, 1.0, 100.0)
        threshold = sensitivity / 100.0

        if level < threshold:
            return Suppressed(AlertType.MOTION, "below_threshold")

        return self._emit(
            AlertType.MOTION,
            motion_severity(level, threshold),
            thresholds,
            metadata={"level": level, "zone": signal.zone},
            stream_id=signal.stream_id,
        )

    def _evaluate_audio(self, signal: AudioSignal, thresholds: Thresholds) -> EvaluationResult:
        level = clamp_number(signal.level)
        if level < clamp_number(thresholds.audio_threshold, 0.0, 100.0):
            return Suppressed(AlertType.AUDIO, "below_threshold")

        severity = Severity.WARNING
        pattern = (signal.pattern or "").lower()
        if any(label in pattern for label in ESCALATING_AUDIO_PATTERNS):
            severity = Severity.CRITICAL

        return self._emit(
            AlertType.AUDIO,
            severity,
            thresholds,
            metadata={"level": level, "pattern": signal.pattern},
            stream_id=signal.stream_id,
        )

    def _evaluate_person(self, signal: PersonSignal, thresholds: Thresholds) -> EvaluationResult:
        count = int(clamp_number(signal.count))
        confidence = clamp_number(signal.confidence, 0.0, 1.0)
        allowed = thresholds.max_allowed_persons

        # Intrusion check (None disables it, 0 means nobody is allowed)
        if allowed is not None and allowed >= 0 and count > allowed:
            return self._emit(
                AlertType.INTRUSION,
                Severity.CRITICAL,
                thresholds,
                metadata={"count": count, "allowed": allowed, "detections": signal.detections},
                stream_id=signal.stream_id,
            )

        if count <= 0 or confidence < clamp_number(thresholds.person_confidence, 0.0, 1.0):
            return Suppressed(AlertType.PERSON, "below_threshold")

        return self._emit(
            AlertType.PERSON,
            Severity.INFO,
            thresholds,
            metadata={"count": count, "confidence": confidence, "detections": signal.detections},
            stream_id=signal.stream_id,
        )

    def _evaluate_animal(self, signal: AnimalSignal, thresholds: Thresholds) -> EvaluationResult:
        confidence = clamp_number(signal.confidence, 0.0, 1.0)
        if confidence < clamp_number(thresholds.animal_confidence, 0.0, 1.0):
            return Suppressed(AlertType.ANIMAL, "below_threshold")

        danger_level = (signal.danger_level or "none").lower()
        if danger_level in DANGEROUS_LEVELS:
            return self._emit(
                AlertType.DANGEROUS_ANIMAL,
                Severity.EMERGENCY,
                thresholds,
                metadata={
                    "type": signal.animal_type,
                    "confidence": confidence,
                    "danger_level": danger_level,
                    "bbox": signal.bbox,
                },
                stream_id=signal.stream_id,
            )

        return self._emit(
            AlertType.ANIMAL,
            Severity.INFO,
            thresholds,
            metadata={"type": signal.animal_type, "confidence": confidence, "bbox": signal.bbox},
            stream_id=signal.stream_id,
        )

    def _evaluate_inactivity(self, signal: InactivitySignal, thresholds: Thresholds) -> EvaluationResult:
        minutes = clamp_number(signal.minutes)
        if minutes < clamp_number(thresholds.inactivity_timeout_min):
            return Suppressed(AlertType.INACTIVITY, "below_threshold")

        severity = Severity.CRITICAL if minutes > 60 else Severity.WARNING
        return self._emit(
            AlertType.INACTIVITY,
            severity,
            thresholds,
            metadata={"minutes": minutes},
            stream_id=signal.stream_id,
        )

    def _evaluate_subject_match(self, signal: SubjectMatchSignal, thresholds: Thresholds) -> EvaluationResult:
        # Upstream matcher already applied its own confidence gate
        return self._emit(
            AlertType.SUBJECT_MATCH,
            Severity.INFO,
            thresholds,
            metadata={
                "subject_id": signal.subject_id,
                "name": signal.name,
                "confidence": clamp_number(signal.confidence, 0.0, 1.0),
            },
            stream_id=signal.stream_id,
        )

    def _emit(
        self,
        alert_type: AlertType,
        severity: Severity,
        thresholds: Thresholds,
        metadata: Optional[Dict[str, Any]] = None,
        stream_id: Optional[str] = None,
        message: Optional[str] = None,
        description: Optional[str] = None,
    ) -> EvaluationResult:
        """Apply the cooldown for the emitted type and build the alert."""
        now = self._clock()
        cooldown = thresholds.cooldown_for(alert_type)

        with self._lock:
            last_time = self._last_alert_time.get(alert_type)
            if last_time is not None and now - last_time < cooldown:
                remaining = cooldown - (now - last_time)
                logger.debug(f"{alert_type.value} alert in cooldown ({remaining:.1f}s left)")
                return Suppressed(alert_type, "cooldown", remaining_s=remaining)
            self._last_alert_time[alert_type] = now

        data = dict(metadata or {})
        title, body = render(alert_type, data, message, description)
        timestamp = self._wall_clock()
        return AlertEvent(
            id=f"alert-{int(timestamp * 1000)}-{uuid.uuid4().hex[:7]}",
            alert_type=alert_type,
            severity=severity,
            message=title,
            description=body,
            timestamp=timestamp,
            stream_id=stream_id,
            metadata=data,
        )

    def in_cooldown(self, alert_type: AlertType, thresholds: Optional[Thresholds] = None) -> bool:
        """Check whether a type is currently inside its cooldown window."""
        thresholds = thresholds or Thresholds()
        with self._lock:
            last_time = self._last_alert_time.get(alert_type)
        if last_time is None:
            return False
        return self._clock() - last_time < thresholds.cooldown_for(alert_type)

    def reset(self) -> None:
        """Reset cooldown state."""
        with self._lock:
            self._last_alert_time.clear()


SIGNAL_TYPES = {
    AlertType.MOTION: MotionSignal,
    AlertType.AUDIO: AudioSignal,
    AlertType.PERSON: PersonSignal,
    AlertType.ANIMAL: AnimalSignal,
    AlertType.INACTIVITY: InactivitySignal,
    AlertType.SUBJECT_MATCH: SubjectMatchSignal,
}
