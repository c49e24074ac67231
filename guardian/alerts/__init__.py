"""
Alert pipeline module.

Provides alert types, the threshold evaluator, the alert registry,
escalation scheduling and the engine that ties them together.
"""

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
)
from .decision import ThresholdEvaluator
from .registry import AlertRegistry
from .escalation import (
    EscalationLevel,
    EscalationScheduler,
    EscalationTimer,
    ESCALATION_LADDER,
    get_starting_level,
)
from .engine import AlertEngine
from .inactivity import InactivityMonitor

__all__ = [
    "AlertType",
    "AlertEvent",
    "Severity",
    "Suppressed",
    "Thresholds",
    "MotionSignal",
    "AudioSignal",
    "PersonSignal",
    "AnimalSignal",
    "InactivitySignal",
    "SubjectMatchSignal",
    "ThresholdEvaluator",
    "AlertRegistry",
    "EscalationLevel",
    "EscalationScheduler",
    "EscalationTimer",
    "ESCALATION_LADDER",
    "get_starting_level",
    "AlertEngine",
    "InactivityMonitor",
]
