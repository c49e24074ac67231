"""Alert types, signals and event definitions."""

import math
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List


class AlertType(Enum):
    """Closed set of alert types raised by the core."""
    MOTION = "motion"
    AUDIO = "audio"
    PERSON = "person"
    ANIMAL = "animal"
    INACTIVITY = "inactivity"
    INTRUSION = "intrusion"
    DANGEROUS_ANIMAL = "dangerous-animal"
    SUBJECT_MATCH = "subject-match"
    SYSTEM = "system"

    @property
    def display_name(self) -> str:
        """Human-readable display name."""
        names = {
            AlertType.MOTION: "Motion Detected",
            AlertType.AUDIO: "Audio Alert",
            AlertType.PERSON: "Person Detected",
            AlertType.ANIMAL: "Animal Detected",
            AlertType.INACTIVITY: "Inactivity Alert",
            AlertType.INTRUSION: "Intrusion Detected",
            AlertType.DANGEROUS_ANIMAL: "Dangerous Animal Alert",
            AlertType.SUBJECT_MATCH: "Subject Match",
            AlertType.SYSTEM: "System Alert",
        }
        return names.get(self, self.value)


class Severity(Enum):
    """Alert severity, ordered info < warning < critical < emergency."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"

    @property
    def rank(self) -> int:
        """Ordinal rank (0=info, 3=emergency)."""
        ranks = {
            Severity.INFO: 0,
            Severity.WARNING: 1,
            Severity.CRITICAL: 2,
            Severity.EMERGENCY: 3,
        }
        return ranks[self]

    def __lt__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


@dataclass
class AlertEvent:
    """
    A classified alert.

    Created once by the evaluator; only the acknowledgment fields change
    afterwards.
    """
    id: str
    alert_type: AlertType
    severity: Severity
    message: str
    description: str
    timestamp: float
    stream_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    acknowledged: bool = False
    acknowledged_at: Optional[float] = None

    @property
    def requires_interaction(self) -> bool:
        """Critical and emergency alerts stay on screen until dismissed."""
        return self.severity >= Severity.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "type": self.alert_type.value,
            "severity": self.severity.value,
            "message": self.message,
            "description": self.description,
            "timestamp": self.timestamp,
            "stream_id": self.stream_id,
            "metadata": self.metadata,
            "acknowledged": self.acknowledged,
            "acknowledged_at": self.acknowledged_at,
        }


@dataclass
class Suppressed:
    """Result of an evaluation that produced no alert."""
    alert_type: AlertType
    reason: str  # "cooldown" or "below_threshold"
    remaining_s: float = 0.0

    def __bool__(self) -> bool:
        return False


@dataclass
class Thresholds:
    """
    Detection thresholds, read fresh at every evaluation.

    Attributes:
        motion_sensitivity: 0-100, motion fires when level >= sensitivity/100
        audio_threshold: 0-100 level an audio signal must reach
        person_confidence: 0-1 minimum person detector confidence
        animal_confidence: 0-1 minimum animal detector confidence
        inactivity_timeout_min: minutes without activity before alerting
        max_allowed_persons: intrusion limit, None disables intrusion checks
        cooldown_seconds: minimum time between accepted alerts of one type
        cooldown_overrides: per-type cooldown seconds keyed by type value
    """
    motion_sensitivity: float = 50.0
    audio_threshold: float = 60.0
    person_confidence: float = 0.6
    animal_confidence: float = 0.5
    inactivity_timeout_min: float = 30.0
    max_allowed_persons: Optional[int] = None
    cooldown_seconds: float = 30.0
    cooldown_overrides: Dict[str, float] = field(default_factory=dict)

    def cooldown_for(self, alert_type: AlertType) -> float:
        """Cooldown window in seconds for one alert type."""
        value = self.cooldown_overrides.get(alert_type.value, self.cooldown_seconds)
        return max(0.0, clamp_number(value))


# =============================================================================
# Signals
# =============================================================================

@dataclass
class MotionSignal:
    """Motion level (0-1+) reported by the motion detector."""
    level: float
    zone: Optional[str] = None
    stream_id: Optional[str] = None


@dataclass
class AudioSignal:
    """Audio level (0-100) and optional classifier label."""
    level: float
    pattern: Optional[str] = None
    stream_id: Optional[str] = None


@dataclass
class PersonSignal:
    """Person count in frame and detector confidence."""
    count: int
    confidence: float = 1.0
    detections: Optional[List[Dict[str, Any]]] = None
    stream_id: Optional[str] = None


@dataclass
class AnimalSignal:
    """Animal detection with optional danger classification."""
    animal_type: str
    confidence: float
    danger_level: Optional[str] = None  # none, low, medium, high, extreme
    bbox: Optional[List[float]] = None
    stream_id: Optional[str] = None


@dataclass
class InactivitySignal:
    """Minutes elapsed without detected activity."""
    minutes: float
    stream_id: Optional[str] = None


@dataclass
class SubjectMatchSignal:
    """A registered subject recognised by the upstream matcher."""
    subject_id: str
    name: Optional[str] = None
    confidence: float = 1.0
    stream_id: Optional[str] = None


def clamp_number(value: Any, low: float = 0.0, high: float = math.inf) -> float:
    """
    Clamp a numeric input into [low, high].

    NaN, None and non-numeric values collapse to ``low``.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return low
    if math.isnan(number):
        return low
    return min(max(number, low), high)
