"""
Unit tests for the threshold evaluator.

Tests per-type classification, input clamping and per-type cooldown.
"""

import math
import threading

import pytest

from guardian.alerts.decision import ThresholdEvaluator, motion_severity
from guardian.alerts.types import (
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


@pytest.fixture
def thresholds():
    return Thresholds(cooldown_seconds=5.0)


# =============================================================================
# Motion
# =============================================================================

class TestMotion:
    """Motion severity is driven by the level/threshold ratio."""

    def test_double_threshold_is_emergency(self, evaluator, thresholds):
        alert = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=1.1), thresholds)
        assert isinstance(alert, AlertEvent)
        assert alert.alert_type == AlertType.MOTION
        assert alert.severity == Severity.EMERGENCY

    def test_just_over_threshold_is_info(self, evaluator, thresholds):
        alert = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.55), thresholds)
        assert alert.severity == Severity.INFO

    def test_below_threshold_suppressed(self, evaluator, thresholds):
        result = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.49), thresholds)
        assert isinstance(result, Suppressed)
        assert result.reason == "below_threshold"
        assert not result

    @pytest.mark.parametrize("ratio,expected", [
        (1.0, Severity.INFO),
        (1.19, Severity.INFO),
        (1.2, Severity.WARNING),
        (1.5, Severity.CRITICAL),
        (1.99, Severity.CRITICAL),
        (2.0, Severity.EMERGENCY),
    ])
    def test_severity_bands(self, ratio, expected):
        assert motion_severity(ratio * 0.5, 0.5) == expected

    def test_zone_in_metadata_and_description(self, evaluator, thresholds):
        alert = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.6, zone="crib"), thresholds)
        assert alert.metadata["zone"] == "crib"
        assert "crib" in alert.description
        assert alert.message == "Motion Detected"

    def test_nan_level_clamped_to_zero(self, evaluator, thresholds):
        result = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=math.nan), thresholds)
        assert isinstance(result, Suppressed)

    def test_sensitivity_clamped_to_minimum(self, evaluator):
        thresholds = Thresholds(motion_sensitivity=0)
        # threshold becomes 0.01, so 0.02 is a 2x ratio
        alert = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.02), thresholds)
        assert alert.severity == Severity.EMERGENCY


# =============================================================================
# Audio
# =============================================================================

class TestAudio:
    """Audio fires at the threshold; crying/scream patterns escalate."""

    def test_below_threshold_suppressed(self, evaluator, thresholds):
        result = evaluator.evaluate(AlertType.AUDIO, AudioSignal(level=59), thresholds)
        assert isinstance(result, Suppressed)

    def test_at_threshold_is_warning(self, evaluator, thresholds):
        alert = evaluator.evaluate(AlertType.AUDIO, AudioSignal(level=60), thresholds)
        assert alert.severity == Severity.WARNING

    @pytest.mark.parametrize("pattern", ["Baby Crying", "SCREAM", "crying_infant"])
    def test_distress_patterns_are_critical(self, evaluator, thresholds, pattern):
        alert = evaluator.evaluate(AlertType.AUDIO, AudioSignal(level=80, pattern=pattern), thresholds)
        assert alert.severity == Severity.CRITICAL

    def test_other_pattern_stays_warning(self, evaluator, thresholds):
        alert = evaluator.evaluate(AlertType.AUDIO, AudioSignal(level=80, pattern="bark"), thresholds)
        assert alert.severity == Severity.WARNING


# =============================================================================
# Person / intrusion
# =============================================================================

class TestPerson:
    """Person counts produce person or intrusion alerts."""

    def test_over_limit_is_intrusion(self, evaluator):
        thresholds = Thresholds(max_allowed_persons=0)
        alert = evaluator.evaluate(AlertType.PERSON, PersonSignal(count=3), thresholds)

        assert alert.alert_type == AlertType.INTRUSION
        assert alert.severity == Severity.CRITICAL
        assert alert.metadata["count"] == 3
        assert alert.metadata["allowed"] == 0
        assert alert.description == "3 persons detected (0 allowed)"

    def test_no_limit_means_person_alert(self, evaluator, thresholds):
        alert = evaluator.evaluate(AlertType.PERSON, PersonSignal(count=5, confidence=0.9), thresholds)
        assert alert.alert_type == AlertType.PERSON
        assert alert.severity == Severity.INFO

    def test_within_limit_is_person(self, evaluator):
        thresholds = Thresholds(max_allowed_persons=2)
        alert = evaluator.evaluate(AlertType.PERSON, PersonSignal(count=2, confidence=0.9), thresholds)
        assert alert.alert_type == AlertType.PERSON

    def test_low_confidence_suppressed(self, evaluator, thresholds):
        result = evaluator.evaluate(AlertType.PERSON, PersonSignal(count=1, confidence=0.5), thresholds)
        assert isinstance(result, Suppressed)

    def test_zero_count_suppressed(self, evaluator, thresholds):
        result = evaluator.evaluate(AlertType.PERSON, PersonSignal(count=0, confidence=0.9), thresholds)
        assert isinstance(result, Suppressed)

    def test_negative_count_clamped(self, evaluator):
        thresholds = Thresholds(max_allowed_persons=0)
        result = evaluator.evaluate(AlertType.PERSON, PersonSignal(count=-4), thresholds)
        assert isinstance(result, Suppressed)

    def test_intrusion_and_person_cool_down_separately(self, evaluator):
        thresholds = Thresholds(max_allowed_persons=1, cooldown_seconds=30)
        intrusion = evaluator.evaluate(AlertType.PERSON, PersonSignal(count=2), thresholds)
        person = evaluator.evaluate(AlertType.PERSON, PersonSignal(count=1, confidence=0.9), thresholds)

        assert intrusion.alert_type == AlertType.INTRUSION
        assert person.alert_type == AlertType.PERSON


# =============================================================================
# Animal
# =============================================================================

class TestAnimal:
    """Animal detections, with danger classification."""

    def test_extreme_danger_is_emergency(self, evaluator, thresholds):
        signal = AnimalSignal(animal_type="bear", confidence=0.9, danger_level="extreme")
        alert = evaluator.evaluate(AlertType.ANIMAL, signal, thresholds)

        assert alert.alert_type == AlertType.DANGEROUS_ANIMAL
        assert alert.severity == Severity.EMERGENCY
        assert "bear" in alert.description

    def test_high_danger_is_emergency(self, evaluator, thresholds):
        signal = AnimalSignal(animal_type="coyote", confidence=0.7, danger_level="HIGH")
        alert = evaluator.evaluate(AlertType.ANIMAL, signal, thresholds)
        assert alert.alert_type == AlertType.DANGEROUS_ANIMAL

    def test_harmless_animal_is_info(self, evaluator, thresholds):
        signal = AnimalSignal(animal_type="cat", confidence=0.8, danger_level="low")
        alert = evaluator.evaluate(AlertType.ANIMAL, signal, thresholds)
        assert alert.alert_type == AlertType.ANIMAL
        assert alert.severity == Severity.INFO

    def test_low_confidence_never_fires(self, evaluator, thresholds):
        signal = AnimalSignal(animal_type="bear", confidence=0.3, danger_level="extreme")
        result = evaluator.evaluate(AlertType.ANIMAL, signal, thresholds)
        assert isinstance(result, Suppressed)


# =============================================================================
# Inactivity / subject match
# =============================================================================

class TestInactivityAndSubject:

    def test_below_timeout_suppressed(self, evaluator, thresholds):
        result = evaluator.evaluate(AlertType.INACTIVITY, InactivitySignal(minutes=29), thresholds)
        assert isinstance(result, Suppressed)

    @pytest.mark.parametrize("minutes,expected", [
        (30, Severity.WARNING),
        (60, Severity.WARNING),
        (61, Severity.CRITICAL),
    ])
    def test_severity(self, evaluator, thresholds, minutes, expected):
        alert = evaluator.evaluate(AlertType.INACTIVITY, InactivitySignal(minutes=minutes), thresholds)
        assert alert.severity == expected

    def test_subject_match_always_info(self, evaluator, thresholds):
        signal = SubjectMatchSignal(subject_id="pet-1", name="Rex", confidence=0.2)
        alert = evaluator.evaluate(AlertType.SUBJECT_MATCH, signal, thresholds)
        assert alert.severity == Severity.INFO
        assert alert.description == "Rex detected"


# =============================================================================
# Cooldown
# =============================================================================

class TestCooldown:
    """At most one accepted alert per type per cooldown window."""

    def test_same_type_suppressed_within_window(self, evaluator, scheduler, thresholds):
        first = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.9), thresholds)
        scheduler.advance(1000)
        second = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.9), thresholds)

        assert isinstance(first, AlertEvent)
        assert isinstance(second, Suppressed)
        assert second.reason == "cooldown"
        assert second.remaining_s == pytest.approx(4.0)

    def test_fires_again_after_window(self, evaluator, scheduler, thresholds):
        evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.9), thresholds)
        scheduler.advance(5000)
        again = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.9), thresholds)
        assert isinstance(again, AlertEvent)

    def test_cooldown_is_per_type(self, evaluator, thresholds):
        motion = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.9), thresholds)
        audio = evaluator.evaluate(AlertType.AUDIO, AudioSignal(level=90), thresholds)
        assert isinstance(motion, AlertEvent)
        assert isinstance(audio, AlertEvent)

    def test_below_threshold_does_not_start_cooldown(self, evaluator, thresholds):
        evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.1), thresholds)
        assert not evaluator.in_cooldown(AlertType.MOTION, thresholds)

        alert = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.9), thresholds)
        assert isinstance(alert, AlertEvent)
        assert evaluator.in_cooldown(AlertType.MOTION, thresholds)

    def test_per_type_override(self, evaluator, scheduler):
        thresholds = Thresholds(cooldown_seconds=30, cooldown_overrides={"motion": 1})
        evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.9), thresholds)
        scheduler.advance(1000)
        again = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.9), thresholds)
        assert isinstance(again, AlertEvent)

    def test_reset_clears_table(self, evaluator, thresholds):
        evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.9), thresholds)
        evaluator.reset()
        again = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.9), thresholds)
        assert isinstance(again, AlertEvent)

    def test_concurrent_signals_only_one_passes(self, thresholds):
        evaluator = ThresholdEvaluator(clock=lambda: 100.0)
        barrier = threading.Barrier(8)
        results = []
        results_lock = threading.Lock()

        def worker():
            barrier.wait()
            result = evaluator.evaluate(AlertType.MOTION, MotionSignal(level=0.9), thresholds)
            with results_lock:
                results.append(result)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if isinstance(r, AlertEvent)) == 1


# =============================================================================
# Explicit alerts and errors
# =============================================================================

class TestRaiseAlert:

    def test_system_alert(self, evaluator, thresholds):
        alert = evaluator.raise_alert(
            AlertType.SYSTEM, Severity.WARNING, thresholds, metadata={"message": "Camera offline"}
        )
        assert alert.alert_type == AlertType.SYSTEM
        assert alert.description == "Camera offline"
        assert alert.id.startswith("alert-")

    def test_explicit_alert_shares_cooldown(self, evaluator, thresholds):
        evaluator.evaluate(AlertType.PERSON, PersonSignal(count=3), Thresholds(max_allowed_persons=0))
        result = evaluator.raise_alert(AlertType.INTRUSION, Severity.CRITICAL, thresholds)
        assert isinstance(result, Suppressed)

    def test_unsupported_type_raises(self, evaluator, thresholds):
        with pytest.raises(ValueError):
            evaluator.evaluate(AlertType.SYSTEM, MotionSignal(level=1.0), thresholds)

    def test_wrong_signal_raises(self, evaluator, thresholds):
        with pytest.raises(TypeError):
            evaluator.evaluate(AlertType.MOTION, AudioSignal(level=90), thresholds)

    def test_ids_are_unique(self, evaluator):
        thresholds = Thresholds(cooldown_seconds=0)
        ids = {
            evaluator.raise_alert(AlertType.SYSTEM, Severity.INFO, thresholds).id
            for _ in range(20)
        }
        assert len(ids) == 20


class TestClampNumber:

    @pytest.mark.parametrize("value,expected", [
        (None, 0.0),
        ("abc", 0.0),
        (math.nan, 0.0),
        (-5, 0.0),
        (0.7, 0.7),
    ])
    def test_clamp(self, value, expected):
        assert clamp_number(value) == expected

    def test_upper_bound(self):
        assert clamp_number(1.7, 0.0, 1.0) == 1.0
