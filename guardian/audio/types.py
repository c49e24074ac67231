"""Sound types, playback profiles and active-sound records."""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple


class SoundType(Enum):
    """Sound types ordered by priority (higher number = more urgent)."""
    NOTIFICATION = "notification"  # Priority 1 - Lowest
    ALERT = "alert"                # Priority 2
    WARNING = "warning"            # Priority 3
    ALARM = "alarm"                # Priority 4
    EMERGENCY = "emergency"        # Priority 5 - Highest, never muted

    @property
    def priority(self) -> int:
        """Get priority level (1=lowest, 5=highest)."""
        return SOUND_PROFILES[self].priority

    @property
    def is_emergency(self) -> bool:
        return self is SoundType.EMERGENCY


@dataclass(frozen=True)
class SoundProfile:
    """
    Default playback parameters for one sound type.

    The tone pattern is a list of (frequency_hz, duration_ms) pairs where a
    frequency of 0 is a silent pause.
    """
    priority: int
    base_volume: float
    loop: bool
    fade_in_ms: int
    fade_out_ms: int
    pattern: Tuple[Tuple[int, int], ...]

    @property
    def duration_ms(self) -> int:
        """Length of one pass through the pattern."""
        return sum(duration for _, duration in self.pattern)


SOUND_PROFILES = {
    SoundType.NOTIFICATION: SoundProfile(
        priority=1, base_volume=0.6, loop=False, fade_in_ms=0, fade_out_ms=200,
        pattern=((440, 200),),
    ),  # Single soft tone
    SoundType.ALERT: SoundProfile(
        priority=2, base_volume=0.7, loop=False, fade_in_ms=0, fade_out_ms=200,
        pattern=((660, 300), (0, 100), (660, 300)),
    ),  # Two medium tones
    SoundType.WARNING: SoundProfile(
        priority=3, base_volume=0.8, loop=False, fade_in_ms=0, fade_out_ms=300,
        pattern=((880, 400), (0, 100), (880, 400), (0, 100), (880, 400)),
    ),  # Three high tones
    SoundType.ALARM: SoundProfile(
        priority=4, base_volume=0.9, loop=True, fade_in_ms=0, fade_out_ms=300,
        pattern=((1000, 400), (0, 50), (1100, 400), (0, 50), (1200, 400),
                 (0, 50), (1300, 400), (0, 50), (1400, 400), (0, 50)),
    ),  # Rising siren
    SoundType.EMERGENCY: SoundProfile(
        priority=5, base_volume=1.0, loop=True, fade_in_ms=0, fade_out_ms=0,
        pattern=((2000, 150), (0, 50), (2000, 150), (0, 50), (2000, 150), (0, 50), (2000, 300)),
    ),  # Urgent rapid beeps
}


@dataclass
class SoundRequest:
    """Resolved parameters of one play() call."""
    id: str
    sound_type: SoundType
    base_priority: int
    volume: float
    loop: bool
    fade_in_ms: int
    fade_out_ms: int
    force_max_volume: bool = False
    is_emergency: bool = False
    on_end: Optional[Callable[[], None]] = None


@dataclass
class ActiveSound:
    """
    A sound currently admitted to the engine.

    `playback` is None when the output device rejected the sound; the
    record is still tracked so stop/eviction behave normally.
    """
    request: SoundRequest
    started_at: float
    target_volume: float
    volume: float
    muted: bool
    playback: Any = None
    mute_exempt: bool = False
    stopping: bool = False
    fade_handle: Any = field(default=None, repr=False)
    end_handle: Any = field(default=None, repr=False)

    @property
    def id(self) -> str:
        return self.request.id

    @property
    def sound_type(self) -> SoundType:
        return self.request.sound_type

    @property
    def priority(self) -> int:
        return self.request.base_priority

    @property
    def loop(self) -> bool:
        return self.request.loop

    @property
    def degraded(self) -> bool:
        """True when the sound is tracked but silent."""
        return self.playback is None


def pattern_for(sound_type: SoundType) -> List[Tuple[int, int]]:
    """Tone pattern for a sound type."""
    return list(SOUND_PROFILES[sound_type].pattern)
