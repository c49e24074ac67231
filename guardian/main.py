"""
Guardian alert core - composition root.

Wires the scheduler, sound engine, alert pipeline, inactivity watchdog,
arming state machine and alert store into one service object.

Usage:
    from guardian.config import load_config
    from guardian.main import GuardianCore, configure_logging

    config = load_config("config.yaml")
    configure_logging(config.system)
    core = GuardianCore.from_config(config)
    core.start()
    core.alerts.handle_motion(0.9, zone="crib")
    core.shutdown()
"""

import logging
from typing import Optional

from guardian.config import Config, SystemConfig, StaticSettingsProvider
from guardian.interfaces import AlertStore, LoggingNotifier, Notifier
from guardian.alerts import (
    AlertEngine,
    AlertRegistry,
    EscalationScheduler,
    InactivityMonitor,
    ThresholdEvaluator,
)
from guardian.audio import AudioBackend, SoundEngine, create_audio_backend
from guardian.security import ArmingStateMachine
from guardian.telemetry import JsonlAlertStore
from guardian.utils.timing import Scheduler, ThreadingScheduler

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(system: Optional[SystemConfig] = None) -> None:
    """Configure root logging from the system config section."""
    system = system or SystemConfig()
    level = getattr(logging, str(system.log_level).upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logging.getLogger().setLevel(level)


class GuardianCore:
    """
    Owns every service of the alert core.

    Components are plain attributes so callers reach them directly
    (core.alerts, core.sound, core.arming, ...).
    """

    def __init__(
        self,
        config: Config,
        scheduler: Scheduler,
        sound: SoundEngine,
        alerts: AlertEngine,
        inactivity: InactivityMonitor,
        arming: ArmingStateMachine,
        store: Optional[AlertStore] = None,
    ):
        self.config = config
        self.scheduler = scheduler
        self.sound = sound
        self.alerts = alerts
        self.inactivity = inactivity
        self.arming = arming
        self.store = store
        self._running = False

    @classmethod
    def from_config(
        cls,
        config: Optional[Config] = None,
        backend: Optional[AudioBackend] = None,
        scheduler: Optional[Scheduler] = None,
        store: Optional[AlertStore] = None,
        notifier: Optional[Notifier] = None,
    ) -> "GuardianCore":
        """
        Build a fully wired core.

        Args:
            config: Configuration (defaults when None)
            backend: Audio backend (created from config.sound when None)
            scheduler: Scheduler (real-time threading scheduler when None)
            store: Alert store (JSONL file from config.system.log_file when None)
            notifier: Notifier (logging notifier when None)
        """
        config = config or Config()
        scheduler = scheduler or ThreadingScheduler()
        backend = backend or create_audio_backend(enabled=config.sound.enabled)
        if store is None:
            store = JsonlAlertStore(
                config.system.log_file,
                flush_interval=config.system.flush_interval_s,
            )
        settings = StaticSettingsProvider(config)

        sound = SoundEngine(
            backend=backend,
            scheduler=scheduler,
            max_concurrent=config.sound.max_concurrent,
            user_volume=config.sound.user_volume,
            muted=config.sound.muted,
        )
        escalation = EscalationScheduler(
            scheduler,
            sound_engine=sound,
            repeat_at_max=config.escalation.repeat_at_max,
        )
        alerts = AlertEngine(
            evaluator=ThresholdEvaluator(clock=scheduler.now),
            registry=AlertRegistry(config.escalation.registry_capacity),
            escalation=escalation,
            sound_engine=sound,
            settings=settings,
            store=store,
            notifier=notifier or LoggingNotifier(),
            escalation_enabled=config.escalation.enabled,
        )
        inactivity = InactivityMonitor(alerts, scheduler, thresholds=settings.get_thresholds)
        arming = ArmingStateMachine(
            scheduler,
            alert_engine=alerts,
            sound_engine=sound,
            arming_countdown_s=config.security.arming_countdown_s,
            trigger_cooldown_s=config.security.trigger_cooldown_s,
            max_stored_frames=config.security.max_stored_frames,
            siren_enabled=config.security.siren_enabled,
            siren_max_volume=config.security.siren_max_volume,
        )

        return cls(
            config=config,
            scheduler=scheduler,
            sound=sound,
            alerts=alerts,
            inactivity=inactivity,
            arming=arming,
            store=store,
        )

    def start(self) -> None:
        """Start background services (alert store writer)."""
        if self._running:
            return
        start = getattr(self.store, "start", None)
        if start is not None:
            start()
        self._running = True
        logger.info("Guardian core started")

    def shutdown(self) -> None:
        """Stop timers and sounds, then flush the alert store."""
        logger.info("Shutting down...")
        self.inactivity.stop()
        self.arming.disarm()
        if self.alerts.escalation is not None:
            self.alerts.escalation.cancel_all()
        self.sound.shutdown()
        self.scheduler.shutdown()

        stop = getattr(self.store, "stop", None)
        if stop is not None:
            stop()
        self._running = False
        logger.info("Shutdown complete")

    @property
    def running(self) -> bool:
        return self._running

    def __enter__(self) -> "GuardianCore":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
