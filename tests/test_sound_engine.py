"""
Unit tests for the sound engine.

Tests capacity/eviction, volume and mute rules, emergency override, fades,
natural completion and degraded playback when the device fails.
"""

import sys
from unittest.mock import Mock, patch

import numpy as np

import pytest

from guardian.alerts.types import Severity
from guardian.audio.backend import (
    AudioBackend,
    AudioBackendError,
    PygameBackend,
    StubBackend,
    create_audio_backend,
)
from guardian.audio.engine import SoundEngine
from guardian.audio.types import SoundType, SOUND_PROFILES


# =============================================================================
# Capacity and eviction
# =============================================================================

class TestCapacity:
    """Active sound count never exceeds max_concurrent."""

    def test_fourth_notification_evicts_oldest(self, sound_engine):
        ids = [sound_engine.play(SoundType.NOTIFICATION) for _ in range(4)]

        assert sound_engine.active_count == 3
        assert sound_engine.get(ids[0]) is None
        assert all(sound_engine.get(i) is not None for i in ids[1:])

    def test_lowest_priority_evicted_first(self, sound_engine):
        alarm = sound_engine.play(SoundType.ALARM)
        alert = sound_engine.play(SoundType.ALERT)
        warning = sound_engine.play(SoundType.WARNING)

        emergency = sound_engine.play(SoundType.EMERGENCY)

        assert sound_engine.get(alert) is None
        assert {s.id for s in sound_engine.get_active_sounds()} == {alarm, warning, emergency}

    def test_lower_priority_request_still_admitted(self, sound_engine):
        sound_engine.play(SoundType.ALARM)
        sound_engine.play(SoundType.WARNING)
        sound_engine.play(SoundType.ALERT)

        note = sound_engine.play(SoundType.NOTIFICATION)

        assert sound_engine.get(note) is not None
        assert sound_engine.active_count == 3
        assert not sound_engine.is_playing_type(SoundType.ALERT)

    def test_fading_sound_evicted_before_others(self, sound_engine):
        alarm = sound_engine.play(SoundType.ALARM)
        alert = sound_engine.play(SoundType.ALERT)
        warning = sound_engine.play(SoundType.WARNING)
        sound_engine.stop(alarm)

        sound_engine.play(SoundType.NOTIFICATION)

        assert sound_engine.get(alarm) is None
        assert sound_engine.get(alert) is not None
        assert sound_engine.get(warning) is not None

    def test_evicted_sound_is_stopped_on_device(self, sound_engine, backend):
        for _ in range(4):
            sound_engine.play(SoundType.NOTIFICATION)
        assert backend.started[0].playing is False

    def test_ids_contain_type(self, sound_engine):
        assert "alarm" in sound_engine.play(SoundType.ALARM)


# =============================================================================
# Volume, mute and emergency mode
# =============================================================================

class TestVolume:

    def test_effective_volume(self, sound_engine, backend):
        sound_engine.play(SoundType.ALERT)
        assert backend.started[-1].volume == pytest.approx(0.7 * 0.7)

    def test_request_volume_multiplier(self, sound_engine, backend):
        sound_engine.play(SoundType.WARNING, volume=0.5)
        assert backend.started[-1].volume == pytest.approx(0.8 * 0.5 * 0.7)

    def test_user_volume_clamped(self, sound_engine):
        sound_engine.set_user_volume(150)
        assert sound_engine.get_user_volume() == 100
        sound_engine.set_user_volume(-3)
        assert sound_engine.get_user_volume() == 0

    def test_force_max_volume_ignores_user_volume(self, sound_engine, backend):
        sound_engine.set_user_volume(10)
        sound_engine.play(SoundType.ALARM, force_max_volume=True)
        assert backend.started[-1].volume == pytest.approx(0.9)

    def test_emergency_type_always_full_volume(self, sound_engine, backend):
        sound_engine.set_user_volume(5)
        sound_engine.play(SoundType.EMERGENCY, volume=0.2)
        assert backend.started[-1].volume == 1.0


class TestMute:

    def test_mute_silences_new_sounds(self, sound_engine, backend):
        sound_engine.set_global_mute(True)
        sound_engine.play(SoundType.ALERT)
        assert backend.started[-1].muted is True

    def test_mute_applies_to_playing_sounds(self, sound_engine, backend):
        sound_engine.play(SoundType.ALARM)
        sound_engine.set_global_mute(True)
        assert backend.started[-1].muted is True

        sound_engine.set_global_mute(False)
        assert backend.started[-1].muted is False

    def test_emergency_sound_never_muted(self, sound_engine, backend):
        sound_engine.set_global_mute(True)
        emergency = sound_engine.play(SoundType.EMERGENCY)
        assert backend.started[-1].muted is False

        sound_engine.set_global_mute(True)
        assert sound_engine.get(emergency).muted is False


class TestEmergencyMode:

    def test_new_sounds_ignore_mute_and_user_volume(self, sound_engine, backend):
        sound_engine.set_user_volume(10)
        sound_engine.set_global_mute(True)
        sound_engine.set_emergency_mode(True)

        sound_engine.play(SoundType.ALERT)

        assert backend.started[-1].muted is False
        assert backend.started[-1].volume == pytest.approx(0.7)

    def test_in_flight_sounds_unaffected(self, sound_engine, backend):
        sound_engine.play(SoundType.ALARM)
        sound_engine.set_emergency_mode(True)
        assert backend.started[-1].volume == pytest.approx(0.9 * 0.7)

        sound_engine.set_emergency_mode(False)
        sound_engine.play(SoundType.ALARM)
        assert backend.started[-1].volume == pytest.approx(0.9 * 0.7)

    def test_alarm_is_idempotent(self, sound_engine):
        first = sound_engine.start_emergency_alarm()
        second = sound_engine.start_emergency_alarm()

        assert first == second
        assert sound_engine.is_emergency_mode_active()
        assert sound_engine.is_emergency_alarm_active()
        assert sound_engine.is_playing_type(SoundType.EMERGENCY)

    def test_stop_alarm(self, sound_engine):
        sound_engine.start_emergency_alarm()
        sound_engine.play(SoundType.EMERGENCY)

        sound_engine.stop_emergency_alarm()

        assert not sound_engine.is_emergency_mode_active()
        assert not sound_engine.is_emergency_alarm_active()
        assert not sound_engine.is_playing_type(SoundType.EMERGENCY)

    def test_test_emergency_stops_itself(self, sound_engine, scheduler):
        sound_engine.test_emergency(duration_ms=2000)
        assert sound_engine.is_playing_type(SoundType.EMERGENCY)

        scheduler.advance(2000)
        assert not sound_engine.is_playing_type(SoundType.EMERGENCY)
        assert not sound_engine.is_emergency_mode_active()


# =============================================================================
# Lifecycle
# =============================================================================

class TestLifecycle:

    def test_non_looping_sound_completes(self, sound_engine, scheduler):
        ended = Mock()
        sound_id = sound_engine.play(SoundType.ALERT, on_end=ended)

        scheduler.advance(SOUND_PROFILES[SoundType.ALERT].duration_ms)

        ended.assert_called_once_with()
        assert sound_engine.get(sound_id) is None

    def test_looping_sound_persists(self, sound_engine, scheduler):
        sound_id = sound_engine.play(SoundType.ALARM)
        scheduler.advance(60000)
        assert sound_engine.get(sound_id) is not None

    def test_loop_override(self, sound_engine, scheduler):
        sound_id = sound_engine.play(SoundType.ALARM, loop=False)
        scheduler.advance(SOUND_PROFILES[SoundType.ALARM].duration_ms)
        assert sound_engine.get(sound_id) is None

    def test_evicted_sound_skips_on_end(self, sound_engine, scheduler):
        ended = Mock()
        sound_engine.play(SoundType.NOTIFICATION, on_end=ended)
        for _ in range(3):
            sound_engine.play(SoundType.ALARM)

        scheduler.advance(1000)
        ended.assert_not_called()

    def test_on_end_error_contained(self, sound_engine, scheduler):
        sound_engine.play(SoundType.NOTIFICATION, on_end=Mock(side_effect=RuntimeError("boom")))
        scheduler.advance(500)
        assert sound_engine.active_count == 0

    def test_stop_fades_out(self, sound_engine, scheduler, backend):
        sound_id = sound_engine.play(SoundType.ALARM)
        sound_engine.stop(sound_id)

        assert not sound_engine.is_playing()
        assert sound_engine.get(sound_id) is not None

        scheduler.advance(300)
        assert sound_engine.get(sound_id) is None
        assert backend.started[-1].volume == pytest.approx(0.0)
        assert backend.started[-1].playing is False

    def test_stop_immediately(self, sound_engine, backend):
        sound_id = sound_engine.play(SoundType.ALARM)
        sound_engine.stop(sound_id, 0)
        assert sound_engine.get(sound_id) is None
        assert backend.started[-1].playing is False

    def test_emergency_ignores_fade(self, sound_engine):
        sound_id = sound_engine.play(SoundType.EMERGENCY)
        sound_engine.stop(sound_id, 1000)
        assert sound_engine.get(sound_id) is None

    def test_stop_unknown_is_noop(self, sound_engine):
        sound_engine.stop("missing")

    def test_fade_in(self, sound_engine, scheduler, backend):
        sound_engine.play(SoundType.ALARM, fade_in_ms=100)
        assert backend.started[-1].volume == 0.0

        scheduler.advance(100)
        assert backend.started[-1].volume == pytest.approx(0.9 * 0.7)

    def test_stop_by_type(self, sound_engine):
        sound_engine.play(SoundType.ALARM)
        keep = sound_engine.play(SoundType.WARNING)
        sound_engine.stop_by_type(SoundType.ALARM, 0)

        assert not sound_engine.is_playing_type(SoundType.ALARM)
        assert sound_engine.get(keep) is not None

    def test_stop_all(self, sound_engine):
        sound_engine.play(SoundType.ALARM)
        sound_engine.play(SoundType.WARNING)
        sound_engine.stop_all()
        assert sound_engine.active_count == 0

    def test_play_for_severity(self, sound_engine):
        sound_id = sound_engine.play_for_severity(Severity.CRITICAL)
        assert sound_engine.get(sound_id).sound_type == SoundType.ALARM

    def test_preview_does_not_loop(self, sound_engine):
        sound_id = sound_engine.test(SoundType.ALARM)
        assert sound_engine.get(sound_id).loop is False

    def test_shutdown(self, sound_engine):
        sound_engine.start_emergency_alarm()
        sound_engine.shutdown()
        assert sound_engine.active_count == 0
        assert not sound_engine.is_emergency_mode_active()


# =============================================================================
# Device failures
# =============================================================================

class TestDeviceFailure:

    def test_incomplete_backend_cannot_be_created(self):
        class HalfBackend(AudioBackend):
            pass

        with pytest.raises(TypeError):
            HalfBackend()

    def test_rejected_start_tracked_silently(self, scheduler):
        backend = Mock(spec=AudioBackend)
        backend.start.side_effect = AudioBackendError("no device")
        engine = SoundEngine(backend=backend, scheduler=scheduler)

        sound_id = engine.play(SoundType.ALARM)

        assert engine.get(sound_id).degraded
        engine.stop(sound_id, 0)
        assert engine.get(sound_id) is None

    def test_volume_failure_logged(self, scheduler):
        playback = Mock()
        playback.set_volume.side_effect = AudioBackendError("gone")
        backend = Mock(spec=AudioBackend)
        backend.start.return_value = playback
        engine = SoundEngine(backend=backend, scheduler=scheduler)

        sound_id = engine.play(SoundType.ALARM)
        engine.stop(sound_id)
        scheduler.advance(300)

        assert engine.get(sound_id) is None
        playback.stop.assert_called_once()

    def test_disabled_audio_uses_stub(self):
        assert isinstance(create_audio_backend(enabled=False), StubBackend)

    def test_uninitialized_pygame_backend_rejects(self):
        backend = PygameBackend()
        assert not backend.is_available
        with pytest.raises(AudioBackendError):
            backend.start(SoundType.ALERT, 0.5, False, False)

    def test_pygame_backend_renders_through_mixer(self):
        channel = Mock()
        sound = Mock()
        sound.play.return_value = channel
        pygame = Mock()
        pygame.sndarray.make_sound.return_value = sound

        with patch.dict(sys.modules, {"pygame": pygame}):
            backend = PygameBackend()
            assert backend.initialize()
            playback = backend.start(SoundType.ALARM, 0.5, True, True)

        sound.play.assert_called_once_with(loops=-1)
        samples = pygame.sndarray.make_sound.call_args[0][0]
        assert samples.dtype == np.int16
        assert len(samples) == int(PygameBackend.SAMPLE_RATE * SOUND_PROFILES[SoundType.ALARM].duration_ms / 1000)
        # muted playback keeps the channel silent
        channel.set_volume.assert_called_with(0.0)

        playback.set_muted(False)
        channel.set_volume.assert_called_with(0.5)
        playback.stop()
        channel.stop.assert_called_once()
