"""Arming states and intrusion evidence records."""

import time
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class ArmingState(Enum):
    """Intrusion arming lifecycle."""
    DISARMED = "disarmed"
    ARMING = "arming"
    ARMED = "armed"
    TRIGGERED = "triggered"

    @property
    def label(self) -> str:
        """Status text for display."""
        labels = {
            ArmingState.DISARMED: "Disarmed",
            ArmingState.ARMING: "Arming...",
            ArmingState.ARMED: "Armed",
            ArmingState.TRIGGERED: "INTRUDER DETECTED",
        }
        return labels[self]

    @property
    def color(self) -> str:
        """Status color name for display."""
        colors = {
            ArmingState.DISARMED: "gray",
            ArmingState.ARMING: "yellow",
            ArmingState.ARMED: "green",
            ArmingState.TRIGGERED: "red",
        }
        return colors[self]


@dataclass
class IntrusionFrame:
    """
    Evidence captured when an intrusion is triggered.

    The evidence payload is opaque to the core (an encoded frame, a path,
    a dict from the capture layer).
    """
    id: str
    timestamp: float
    evidence: Any
    person_count: int
    allowed_count: int
    detections: List[Dict[str, Any]] = field(default_factory=list)
    acknowledged: bool = False
    exported: bool = False
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization (evidence omitted)."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "person_count": self.person_count,
            "allowed_count": self.allowed_count,
            "detections": self.detections,
            "acknowledged": self.acknowledged,
            "exported": self.exported,
            "notes": self.notes,
        }


def create_intrusion_frame(
    evidence: Any,
    person_count: int,
    allowed_count: int,
    detections: Optional[List[Dict[str, Any]]] = None,
    timestamp: Optional[float] = None,
) -> IntrusionFrame:
    """Build an IntrusionFrame with a unique id."""
    timestamp = time.time() if timestamp is None else timestamp
    return IntrusionFrame(
        id=f"intrusion-{int(timestamp * 1000)}-{uuid.uuid4().hex[:7]}",
        timestamp=timestamp,
        evidence=evidence,
        person_count=max(0, int(person_count)),
        allowed_count=max(0, int(allowed_count)),
        detections=list(detections or []),
    )
