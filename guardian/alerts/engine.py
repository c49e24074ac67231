"""
Alert engine - routes detection signals into the alert pipeline.

Flow: signal -> ThresholdEvaluator -> AlertRegistry + EscalationScheduler
-> SoundEngine, then persistence/notification/listeners as side effects.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from guardian.interfaces import (
    AlertStore,
    NullAlertStore,
    Notifier,
    NullNotifier,
    SettingsProvider,
)
from .types import (
    AlertType,
    AlertEvent,
    Severity,
    Thresholds,
    MotionSignal,
    AudioSignal,
    PersonSignal,
    AnimalSignal,
    InactivitySignal,
    SubjectMatchSignal,
)
from .decision import ThresholdEvaluator, EvaluationResult
from .registry import AlertRegistry
from .escalation import EscalationScheduler, ESCALATION_LADDER, get_starting_level

logger = logging.getLogger(__name__)

AlertListener = Callable[[AlertEvent], None]


class AlertEngine:
    """
    Orchestrates evaluation, registration, escalation and acknowledgment.

    Thresholds, volume, mute and the emergency-mode flag are pulled from the
    settings provider on every inbound call. Volume/mute/emergency changes
    are forwarded to the sound engine only when they differ from the last
    pulled value, so direct sound engine calls are not overwritten.
    """

    def __init__(
        self,
        evaluator: Optional[ThresholdEvaluator] = None,
        registry: Optional[AlertRegistry] = None,
        escalation: Optional[EscalationScheduler] = None,
        sound_engine=None,
        settings: Optional[SettingsProvider] = None,
        store: Optional[AlertStore] = None,
        notifier: Optional[Notifier] = None,
        escalation_enabled: bool = True,
        wall_clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            evaluator: Threshold evaluator (cooldown table owner)
            registry: Bounded alert log
            escalation: Escalation scheduler; None plays a single cue per alert
            sound_engine: SoundEngine for single cues and test sounds
            settings: Pull-only settings source (defaults when None)
            store: Persistence collaborator
            notifier: Notification collaborator
            escalation_enabled: Start escalation for new unacknowledged alerts
            wall_clock: Epoch seconds for acknowledgment timestamps
        """
        self.evaluator = evaluator if evaluator is not None else ThresholdEvaluator()
        self.registry = registry if registry is not None else AlertRegistry()
        self.escalation = escalation
        self.sound_engine = sound_engine
        self.settings = settings
        self.store = store if store is not None else NullAlertStore()
        self.notifier = notifier if notifier is not None else NullNotifier()
        self.escalation_enabled = escalation_enabled
        self._wall_clock = wall_clock or time.time

        self._lock = threading.RLock()
        self._listeners: List[AlertListener] = []
        # Single cues played when escalation is off, keyed by alert id
        self._cues: Dict[str, str] = {}
        # Last values forwarded to the sound engine, seeded from its current state
        self._last_volume: Optional[float] = None
        self._last_muted: Optional[bool] = None
        self._last_emergency: Optional[bool] = None
        if sound_engine is not None:
            self._last_volume = float(sound_engine.get_user_volume())
            self._last_muted = bool(sound_engine.is_global_muted())
            self._last_emergency = bool(sound_engine.is_emergency_mode_active())

    # -------------------------------------------------------------------------
    # Inbound signals
    # -------------------------------------------------------------------------

    def handle_motion(self, level: float, zone: Optional[str] = None,
                      stream_id: Optional[str] = None) -> Optional[AlertEvent]:
        return self._evaluate(AlertType.MOTION, MotionSignal(level=level, zone=zone, stream_id=stream_id))

    def handle_audio(self, level: float, pattern: Optional[str] = None,
                     stream_id: Optional[str] = None) -> Optional[AlertEvent]:
        return self._evaluate(AlertType.AUDIO, AudioSignal(level=level, pattern=pattern, stream_id=stream_id))

    def handle_person(
        self,
        count: int,
        confidence: float = 1.0,
        detections: Optional[List[Dict[str, Any]]] = None,
        stream_id: Optional[str] = None,
    ) -> Optional[AlertEvent]:
        """Person count; may produce an intrusion alert when over the allowed limit."""
        signal = PersonSignal(
            count=count,
            confidence=confidence,
            detections=list(detections or []),
            stream_id=stream_id,
        )
        return self._evaluate(AlertType.PERSON, signal)

    def handle_animal(
        self,
        animal_type: str,
        confidence: float,
        danger_level: Optional[str] = None,
        bbox: Optional[tuple] = None,
        stream_id: Optional[str] = None,
    ) -> Optional[AlertEvent]:
        signal = AnimalSignal(
            animal_type=animal_type,
            confidence=confidence,
            danger_level=danger_level,
            bbox=bbox,
            stream_id=stream_id,
        )
        return self._evaluate(AlertType.ANIMAL, signal)

    def handle_inactivity(self, minutes: float, stream_id: Optional[str] = None) -> Optional[AlertEvent]:
        return self._evaluate(AlertType.INACTIVITY, InactivitySignal(minutes=minutes, stream_id=stream_id))

    def handle_subject_match(
        self,
        subject_id: str,
        name: Optional[str] = None,
        confidence: float = 1.0,
        stream_id: Optional[str] = None,
    ) -> Optional[AlertEvent]:
        signal = SubjectMatchSignal(
            subject_id=subject_id,
            name=name,
            confidence=confidence,
            stream_id=stream_id,
        )
        return self._evaluate(AlertType.SUBJECT_MATCH, signal)

    def raise_system_alert(
        self,
        message: str,
        severity: Severity = Severity.WARNING,
        description: Optional[str] = None,
    ) -> Optional[AlertEvent]:
        """Raise a system alert (camera offline, storage full, ...)."""
        return self.raise_alert(
            AlertType.SYSTEM,
            severity,
            metadata={"message": message},
            message=message,
            description=description,
        )

    def raise_alert(
        self,
        alert_type: AlertType,
        severity: Severity,
        metadata: Optional[Dict[str, Any]] = None,
        stream_id: Optional[str] = None,
        message: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Optional[AlertEvent]:
        """
        Raise an alert of explicit type and severity.

        Shares the evaluator's cooldown table with signal-driven alerts.
        """
        thresholds = self._pull_settings()
        result = self.evaluator.raise_alert(
            alert_type,
            severity,
            thresholds,
            metadata=metadata,
            stream_id=stream_id,
            message=message,
            description=description,
        )
        return self._accept(result)

    def _evaluate(self, alert_type: AlertType, signal: Any) -> Optional[AlertEvent]:
        thresholds = self._pull_settings()
        return self._accept(self.evaluator.evaluate(alert_type, signal, thresholds))

    def _accept(self, result: EvaluationResult) -> Optional[AlertEvent]:
        if not isinstance(result, AlertEvent):
            logger.debug(f"{result.alert_type.value} suppressed: {result.reason}")
            return None
        self.register(result)
        return result

    # -------------------------------------------------------------------------
    # Registration and acknowledgment
    # -------------------------------------------------------------------------

    def register(self, alert: AlertEvent) -> None:
        """
        Add an alert to the registry and start its audible escalation.

        Alerts evicted from the registry lose their escalation state.
        """
        with self._lock:
            evicted = self.registry.add(alert)
            for old in evicted:
                self._drop(old.id)

            if not alert.acknowledged:
                if self.escalation is not None and self.escalation_enabled:
                    self.escalation.start(alert)
                elif self.sound_engine is not None:
                    step = ESCALATION_LADDER[get_starting_level(alert.severity)]
                    self._cues[alert.id] = self.sound_engine.play(
                        step.sound_type,
                        loop=False,
                        volume=step.intensity,
                        on_end=lambda alert_id=alert.id: self._cue_finished(alert_id),
                    )

            listeners = list(self._listeners)

        logger.info(
            f"Alert {alert.id}: {alert.alert_type.value}/{alert.severity.value} - {alert.message}"
        )

        try:
            self.store.record_alert(alert)
        except Exception as e:
            logger.warning(f"Failed to persist alert {alert.id}: {e}")

        try:
            self.notifier.notify(
                alert.message,
                alert.description,
                tag=alert.alert_type.value,
                require_interaction=alert.requires_interaction,
                data={
                    "alert_id": alert.id,
                    "type": alert.alert_type.value,
                    "severity": alert.severity.value,
                },
            )
        except Exception as e:
            logger.warning(f"Failed to notify alert {alert.id}: {e}")

        for listener in listeners:
            try:
                listener(alert)
            except Exception:
                logger.exception(f"Alert listener failed for {alert.id}")

    def acknowledge(self, alert_id: str) -> bool:
        """
        Acknowledge one alert and silence only its escalation.

        Returns:
            True if the alert changed; unknown or already acknowledged ids
            return False without side effects
        """
        with self._lock:
            alert = self.registry.acknowledge(alert_id, self._wall_clock())
            if alert is None:
                return False
            self._silence(alert_id)

        logger.info(f"Alert {alert_id} acknowledged")
        self._persist_acknowledgment(alert)
        return True

    def acknowledge_all(self) -> int:
        """
        Acknowledge every outstanding alert and cancel all escalation timers.

        Returns:
            Number of alerts acknowledged
        """
        with self._lock:
            changed = self.registry.acknowledge_all(self._wall_clock())
            if self.escalation is not None:
                self.escalation.cancel_all()
            for alert in changed:
                self._stop_cue(alert.id)

        if changed:
            logger.info(f"Acknowledged {len(changed)} alerts")
        for alert in changed:
            self._persist_acknowledgment(alert)
        return len(changed)

    def _persist_acknowledgment(self, alert: AlertEvent) -> None:
        try:
            self.store.update_acknowledgment(alert.id, alert.acknowledged_at)
        except Exception as e:
            logger.warning(f"Failed to persist acknowledgment of {alert.id}: {e}")

    def _silence(self, alert_id: str) -> None:
        if self.escalation is not None:
            self.escalation.cancel(alert_id)
        self._stop_cue(alert_id)

    def _drop(self, alert_id: str) -> None:
        if self.escalation is not None:
            self.escalation.forget(alert_id)
        self._stop_cue(alert_id)

    def _stop_cue(self, alert_id: str) -> None:
        sound_id = self._cues.pop(alert_id, None)
        if sound_id is not None and self.sound_engine is not None:
            self.sound_engine.stop(sound_id, 0)

    def _cue_finished(self, alert_id: str) -> None:
        with self._lock:
            self._cues.pop(alert_id, None)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, listener: AlertListener) -> Callable[[], None]:
        """
        Register a callback for every new alert.

        Returns:
            Function that removes the listener (safe to call more than once)
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def recent_alerts(self, limit: int = 50) -> List[AlertEvent]:
        return self.registry.recent(limit)

    def unacknowledged_alerts(self) -> List[AlertEvent]:
        return self.registry.unacknowledged()

    @property
    def unacknowledged_count(self) -> int:
        return len(self.registry.unacknowledged())

    def escalation_level(self, alert_id: str) -> Optional[int]:
        if self.escalation is None:
            return None
        return self.escalation.level_of(alert_id)

    def test_sound(self, severity: Severity) -> Optional[str]:
        """Play the starting cue for a severity without creating an alert."""
        if self.sound_engine is None:
            return None
        self._pull_settings()
        step = ESCALATION_LADDER[get_starting_level(severity)]
        return self.sound_engine.play(step.sound_type, loop=False, volume=step.intensity)

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def _pull_settings(self) -> Thresholds:
        """Read fresh thresholds and forward changed audio settings."""
        if self.settings is None:
            return Thresholds()

        try:
            thresholds = self.settings.get_thresholds()
        except Exception as e:
            logger.warning(f"Settings provider failed, using default thresholds: {e}")
            return Thresholds()

        if self.sound_engine is None:
            return thresholds

        try:
            volume = float(self.settings.get_volume())
            muted = bool(self.settings.is_muted())
            emergency = bool(self.settings.is_emergency_mode_enabled())
        except Exception as e:
            logger.warning(f"Settings provider failed to report audio settings: {e}")
            return thresholds

        with self._lock:
            if volume != self._last_volume:
                self._last_volume = volume
                self.sound_engine.set_user_volume(volume)
            if muted != self._last_muted:
                self._last_muted = muted
                self.sound_engine.set_global_mute(muted)
            if emergency != self._last_emergency:
                self._last_emergency = emergency
                # A running emergency alarm owns emergency mode until it is stopped
                if emergency or not self.sound_engine.is_emergency_alarm_active():
                    self.sound_engine.set_emergency_mode(emergency)

        return thresholds
