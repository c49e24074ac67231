"""
Audio output module.

Provides sound profiles, output backends (pygame or stub) and the
priority-arbitrated sound engine.
"""

from .types import SoundType, SoundProfile, SOUND_PROFILES, ActiveSound
from .backend import (
    AudioBackend,
    AudioBackendError,
    PygameBackend,
    StubBackend,
    create_audio_backend,
)
from .engine import SoundEngine

__all__ = [
    "SoundType",
    "SoundProfile",
    "SOUND_PROFILES",
    "ActiveSound",
    "AudioBackend",
    "AudioBackendError",
    "PygameBackend",
    "StubBackend",
    "create_audio_backend",
    "SoundEngine",
]
