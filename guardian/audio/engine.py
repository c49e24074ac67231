"""Priority-arbitrated sound engine with emergency override."""

import itertools
import logging
import threading
from typing import Callable, Dict, List, Optional

from guardian.alerts.types import Severity
from guardian.utils.timing import Scheduler, ThreadingScheduler
from .backend import AudioBackend, StubBackend
from .types import SoundType, SoundRequest, ActiveSound, SOUND_PROFILES

logger = logging.getLogger(__name__)

SEVERITY_SOUNDS = {
    Severity.INFO: SoundType.NOTIFICATION,
    Severity.WARNING: SoundType.ALERT,
    Severity.CRITICAL: SoundType.ALARM,
    Severity.EMERGENCY: SoundType.EMERGENCY,
}


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


class SoundEngine:
    """
    Plays alert sounds under a hard concurrency cap.

    Features:
    - Fixed per-type priority; full engine evicts the lowest-priority,
      oldest sound (sounds already fading out go first)
    - Global emergency mode forcing max volume and ignoring mute
    - Emergency-type sounds never muted, always at volume 1.0
    - Scheduler-driven fades and natural completion
    - Output device failures logged, sound tracked silently

    Usage:
        engine = SoundEngine(backend=StubBackend(), max_concurrent=3)
        sound_id = engine.play(SoundType.ALERT)
        # ... later
        engine.stop(sound_id)
    """

    DEFAULT_MAX_CONCURRENT = 3
    DEFAULT_USER_VOLUME = 70
    FADE_STEP_MS = 25

    def __init__(
        self,
        backend: Optional[AudioBackend] = None,
        scheduler: Optional[Scheduler] = None,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        user_volume: float = DEFAULT_USER_VOLUME,
        muted: bool = False,
    ):
        self._backend = backend if backend is not None else StubBackend()
        self._scheduler = scheduler if scheduler is not None else ThreadingScheduler()
        self._max_concurrent = max(1, int(max_concurrent))
        self._user_volume = _clamp(float(user_volume), 0.0, 100.0)
        self._muted = muted
        self._emergency_mode = False
        self._emergency_alarm_id: Optional[str] = None

        self._lock = threading.RLock()
        self._active: Dict[str, ActiveSound] = {}
        self._ids = itertools.count(1)

    # -------------------------------------------------------------------------
    # Volume, mute and emergency mode
    # -------------------------------------------------------------------------

    def set_user_volume(self, volume: float) -> None:
        """Set user volume (0-100). Applies to sounds started afterwards."""
        with self._lock:
            self._user_volume = _clamp(float(volume), 0.0, 100.0)

    def get_user_volume(self) -> float:
        return self._user_volume

    def set_global_mute(self, muted: bool) -> None:
        """Mute or unmute every non-emergency sound, including playing ones."""
        with self._lock:
            self._muted = bool(muted)
            for sound in self._active.values():
                if not sound.mute_exempt:
                    self._apply_muted(sound, self._muted)

    def is_global_muted(self) -> bool:
        return self._muted

    def set_emergency_mode(self, active: bool) -> None:
        """
        Toggle global emergency mode.

        Only sounds started afterwards are affected; in-flight sounds keep
        the volume and mute state they started with.
        """
        with self._lock:
            if self._emergency_mode != bool(active):
                logger.info(f"Emergency mode {'activated' if active else 'cleared'}")
            self._emergency_mode = bool(active)

    def is_emergency_mode_active(self) -> bool:
        return self._emergency_mode

    def is_emergency_alarm_active(self) -> bool:
        """True while the alarm from start_emergency_alarm() is sounding."""
        with self._lock:
            if self._emergency_alarm_id is None:
                return False
            alarm = self._active.get(self._emergency_alarm_id)
            return alarm is not None and not alarm.stopping

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    # -------------------------------------------------------------------------
    # Playback
    # -------------------------------------------------------------------------

    def play(
        self,
        sound_type: SoundType,
        loop: Optional[bool] = None,
        fade_in_ms: Optional[int] = None,
        fade_out_ms: Optional[int] = None,
        force_max_volume: bool = False,
        volume: float = 1.0,
        on_end: Optional[Callable[[], None]] = None,
    ) -> str:
        """
        Play a sound.

        Args:
            sound_type: Sound to play
            loop: Loop until stopped (default per type)
            fade_in_ms: Fade-in duration, 0 = immediate (default per type)
            fade_out_ms: Fade-out used by stop() (default per type)
            force_max_volume: Ignore user volume
            volume: Per-request volume multiplier (0-1)
            on_end: Called when a non-looping sound completes naturally

        Returns:
            Sound id (always returned, even if the device rejected playback)
        """
        profile = SOUND_PROFILES[sound_type]
        emergency = sound_type.is_emergency

        with self._lock:
            sound_id = f"{sound_type.value}-{next(self._ids)}"
            request = SoundRequest(
                id=sound_id,
                sound_type=sound_type,
                base_priority=profile.priority,
                volume=_clamp(float(volume), 0.0, 1.0),
                loop=profile.loop if loop is None else bool(loop),
                fade_in_ms=0 if emergency else max(0, int(profile.fade_in_ms if fade_in_ms is None else fade_in_ms)),
                fade_out_ms=0 if emergency else max(0, int(profile.fade_out_ms if fade_out_ms is None else fade_out_ms)),
                force_max_volume=force_max_volume,
                is_emergency=emergency,
                on_end=on_end,
            )

            target = self._effective_volume(request)
            mute_exempt = emergency or self._emergency_mode
            muted = False if mute_exempt else self._muted

            self._make_room()

            initial = 0.0 if request.fade_in_ms > 0 else target
            sound = ActiveSound(
                request=request,
                started_at=self._scheduler.now(),
                target_volume=target,
                volume=initial,
                muted=muted,
                mute_exempt=mute_exempt,
            )
            try:
                sound.playback = self._backend.start(sound_type, initial, muted, request.loop)
            except Exception as e:
                logger.warning(f"Audio device rejected {sound_id}: {e} - continuing silently")
                sound.playback = None

            self._active[sound_id] = sound
            logger.debug(
                f"Playing {sound_id} (priority {request.base_priority}, volume {target:.2f}, "
                f"muted={muted}, active={len(self._active)}/{self._max_concurrent})"
            )

            if request.fade_in_ms > 0:
                self._ramp(sound, 0.0, target, request.fade_in_ms, None)

            if not request.loop:
                sound.end_handle = self._scheduler.schedule(
                    profile.duration_ms, lambda: self._complete(sound_id)
                )

        return sound_id

    def play_for_severity(self, severity: Severity, **options) -> str:
        """Play the default sound mapped to an alert severity."""
        return self.play(SEVERITY_SOUNDS[severity], **options)

    def test(self, sound_type: SoundType) -> str:
        """Play a single non-looping preview of a sound type."""
        return self.play(sound_type, loop=False)

    def _effective_volume(self, request: SoundRequest) -> float:
        if request.is_emergency:
            return 1.0
        base = SOUND_PROFILES[request.sound_type].base_volume
        override = self._emergency_mode or request.force_max_volume
        scale = 1.0 if override else self._user_volume / 100.0
        return _clamp(base * request.volume * scale, 0.0, 1.0)

    def _make_room(self) -> None:
        """Evict until one more sound fits under the concurrency cap."""
        while len(self._active) >= self._max_concurrent:
            order = {sound_id: index for index, sound_id in enumerate(self._active)}
            victim = min(
                self._active.values(),
                key=lambda s: (not s.stopping, s.priority, s.started_at, order[s.id]),
            )
            logger.debug(f"Evicting {victim.id} (priority {victim.priority}) to admit new sound")
            self._release(victim)

    # -------------------------------------------------------------------------
    # Stopping
    # -------------------------------------------------------------------------

    def stop(self, sound_id: str, fade_out_ms: Optional[int] = None) -> None:
        """
        Stop a sound, fading to silence first.

        Args:
            sound_id: Id returned by play(); unknown ids are ignored
            fade_out_ms: Fade duration, 0 = immediate (default per sound)
        """
        with self._lock:
            sound = self._active.get(sound_id)
            if sound is None:
                return

            fade = sound.request.fade_out_ms if fade_out_ms is None else max(0, int(fade_out_ms))
            if sound.request.is_emergency:
                fade = 0

            if fade <= 0:
                self._release(sound)
                return

            if sound.stopping:
                return

            sound.stopping = True
            self._cancel_timers(sound)
            self._ramp(sound, sound.volume, 0.0, fade, lambda: self._release(sound))

    def stop_by_type(self, sound_type: SoundType, fade_out_ms: Optional[int] = None) -> None:
        """Stop every sound of one type."""
        with self._lock:
            ids = [s.id for s in self._active.values() if s.sound_type is sound_type]
            for sound_id in ids:
                self.stop(sound_id, fade_out_ms)

    def stop_all(self, fade_out_ms: int = 0) -> None:
        """Stop every sound (immediately by default)."""
        with self._lock:
            for sound_id in list(self._active):
                self.stop(sound_id, fade_out_ms)

    # -------------------------------------------------------------------------
    # Emergency alarm
    # -------------------------------------------------------------------------

    def start_emergency_alarm(self) -> str:
        """
        Enter emergency mode and start the looping emergency sound.

        Idempotent: a running alarm is reused.
        """
        with self._lock:
            self._emergency_mode = True
            current = self._active.get(self._emergency_alarm_id) if self._emergency_alarm_id else None
            if current is not None and not current.stopping:
                return current.id

            self._emergency_alarm_id = self.play(SoundType.EMERGENCY, loop=True)
            logger.info(f"Emergency alarm started: {self._emergency_alarm_id}")
            return self._emergency_alarm_id

    def stop_emergency_alarm(self) -> None:
        """Leave emergency mode and stop every emergency sound."""
        with self._lock:
            self._emergency_mode = False
            self._emergency_alarm_id = None
            self.stop_by_type(SoundType.EMERGENCY, 0)
        logger.info("Emergency alarm stopped")

    def test_emergency(self, duration_ms: int = 2000) -> str:
        """Sound the emergency alarm briefly, then clear emergency mode."""
        sound_id = self.start_emergency_alarm()
        self._scheduler.schedule(duration_ms, self.stop_emergency_alarm)
        return sound_id

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, sound_id: str) -> Optional[ActiveSound]:
        with self._lock:
            return self._active.get(sound_id)

    def get_active_sounds(self) -> List[ActiveSound]:
        """All admitted sounds, including ones fading out."""
        with self._lock:
            return list(self._active.values())

    def is_playing(self) -> bool:
        """True if any sound is playing and not fading out."""
        with self._lock:
            return any(not s.stopping for s in self._active.values())

    def is_playing_type(self, sound_type: SoundType) -> bool:
        with self._lock:
            return any(
                s.sound_type is sound_type and not s.stopping for s in self._active.values()
            )

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def shutdown(self) -> None:
        """Stop all sounds and release the output device."""
        with self._lock:
            self._emergency_mode = False
            self._emergency_alarm_id = None
            self.stop_all(0)
        self._backend.close()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _complete(self, sound_id: str) -> None:
        """Natural end of a non-looping sound."""
        with self._lock:
            sound = self._active.get(sound_id)
            if sound is None:
                return
            self._release(sound)
            on_end = sound.request.on_end

        if on_end is not None:
            try:
                on_end()
            except Exception:
                logger.exception(f"on_end callback for {sound_id} failed")

    def _release(self, sound: ActiveSound) -> None:
        if self._active.get(sound.id) is sound:
            del self._active[sound.id]
        self._cancel_timers(sound)
        if sound.playback is not None:
            try:
                sound.playback.stop()
            except Exception as e:
                logger.warning(f"Audio device failed to stop {sound.id}: {e}")

    @staticmethod
    def _cancel_timers(sound: ActiveSound) -> None:
        if sound.fade_handle is not None:
            sound.fade_handle.cancel()
            sound.fade_handle = None
        if sound.end_handle is not None:
            sound.end_handle.cancel()
            sound.end_handle = None

    def _ramp(
        self,
        sound: ActiveSound,
        start: float,
        end: float,
        duration_ms: int,
        on_done: Optional[Callable[[], None]],
    ) -> None:
        """Step the volume from start to end over duration_ms."""
        steps = max(1, int(duration_ms // self.FADE_STEP_MS))
        step_ms = duration_ms / steps
        progress = [0]

        def step() -> None:
            with self._lock:
                if self._active.get(sound.id) is not sound:
                    return
                progress[0] += 1
                self._apply_volume(sound, start + (end - start) * progress[0] / steps)
                if progress[0] >= steps:
                    sound.fade_handle = None
                    if on_done is not None:
                        on_done()
                else:
                    sound.fade_handle = self._scheduler.schedule(step_ms, step)

        sound.fade_handle = self._scheduler.schedule(step_ms, step)

    def _apply_volume(self, sound: ActiveSound, volume: float) -> None:
        sound.volume = _clamp(volume, 0.0, 1.0)
        if sound.playback is not None:
            try:
                sound.playback.set_volume(sound.volume)
            except Exception as e:
                logger.warning(f"Audio device rejected volume change on {sound.id}: {e}")

    def _apply_muted(self, sound: ActiveSound, muted: bool) -> None:
        sound.muted = muted
        if sound.playback is not None:
            try:
                sound.playback.set_muted(muted)
            except Exception as e:
                logger.warning(f"Audio device rejected mute change on {sound.id}: {e}")
