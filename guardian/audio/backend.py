"""
Audio output backends.

Provides a pygame mixer backend that renders synthesized tone patterns and a
stub backend for headless hosts and tests.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .types import SoundType, pattern_for

logger = logging.getLogger(__name__)


class AudioBackendError(RuntimeError):
    """Raised by a backend when the output device rejects an operation."""


class Playback(ABC):
    """Handle for one sound being rendered by a backend."""

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        pass

    @abstractmethod
    def set_muted(self, muted: bool) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass


class AudioBackend(ABC):
    """Abstract base class for audio output devices."""

    @abstractmethod
    def start(self, sound_type: SoundType, volume: float, muted: bool, loop: bool) -> Playback:
        """
        Start rendering a sound.

        Raises:
            AudioBackendError: If the device rejects playback
        """
        pass

    def close(self) -> None:
        """Release device resources."""

    @property
    def is_available(self) -> bool:
        return False


# =============================================================================
# Pygame backend
# =============================================================================

class PygamePlayback(Playback):
    """Playback on a pygame mixer channel. Mute is rendered as zero volume."""

    def __init__(self, channel, volume: float, muted: bool):
        self._channel = channel
        self._volume = volume
        self._muted = muted
        self._apply()

    def _apply(self) -> None:
        self._channel.set_volume(0.0 if self._muted else self._volume)

    def set_volume(self, volume: float) -> None:
        self._volume = volume
        self._apply()

    def set_muted(self, muted: bool) -> None:
        self._muted = muted
        self._apply()

    def stop(self) -> None:
        self._channel.stop()


class PygameBackend(AudioBackend):
    """
    Renders tone patterns through pygame.mixer.

    Features:
    - Tone buffers synthesized once per sound type with numpy
    - 10ms edge fades on every tone to avoid clicks
    - Looping via pygame's native loop count
    """

    SAMPLE_RATE = 44100

    def __init__(self, num_channels: int = 8):
        self._num_channels = num_channels
        self._pygame = None
        self._sounds: Dict[SoundType, object] = {}
        self._initialized = False

    def initialize(self) -> bool:
        """
        Initialize the pygame mixer.

        Returns:
            True if the mixer is ready, False otherwise
        """
        try:
            import pygame
            pygame.mixer.pre_init(frequency=self.SAMPLE_RATE, size=-16, channels=1, buffer=512)
            pygame.mixer.init()
            pygame.mixer.set_num_channels(self._num_channels)
            self._pygame = pygame
            self._initialized = True
            logger.info(f"Pygame audio backend initialized ({self._num_channels} channels)")
            return True
        except ImportError:
            logger.warning("pygame not available - audio disabled")
            return False
        except Exception as e:
            logger.error(f"Audio mixer initialization failed: {e}")
            return False

    def _build_sound(self, sound_type: SoundType):
        """Generate and cache the pygame Sound for a pattern."""
        if sound_type in self._sounds:
            return self._sounds[sound_type]

        import numpy as np

        chunks: List[np.ndarray] = []
        fade_samples = int(self.SAMPLE_RATE * 0.01)
        for frequency, duration_ms in pattern_for(sound_type):
            n_samples = int(self.SAMPLE_RATE * duration_ms / 1000.0)
            if frequency == 0:
                chunks.append(np.zeros(n_samples, dtype=np.float32))
                continue

            t = np.linspace(0, duration_ms / 1000.0, n_samples, dtype=np.float32)
            wave = np.sin(2 * np.pi * frequency * t)

            # Apply fade in/out to avoid clicks
            if fade_samples > 0 and n_samples > 2 * fade_samples:
                wave[:fade_samples] *= np.linspace(0, 1, fade_samples, dtype=np.float32)
                wave[-fade_samples:] *= np.linspace(1, 0, fade_samples, dtype=np.float32)
            chunks.append(wave)

        samples = (np.concatenate(chunks) * 32767).astype(np.int16)
        sound = self._pygame.sndarray.make_sound(samples)
        self._sounds[sound_type] = sound
        return sound

    def start(self, sound_type: SoundType, volume: float, muted: bool, loop: bool) -> Playback:
        if not self._initialized:
            raise AudioBackendError("mixer not initialized")
        try:
            sound = self._build_sound(sound_type)
            channel = sound.play(loops=-1 if loop else 0)
        except Exception as e:
            raise AudioBackendError(f"playback rejected: {e}") from e
        if channel is None:
            raise AudioBackendError("no free mixer channel")
        return PygamePlayback(channel, volume, muted)

    def close(self) -> None:
        if self._initialized and self._pygame is not None:
            try:
                self._pygame.mixer.quit()
            except Exception as e:
                logger.warning(f"Audio mixer shutdown failed: {e}")
        self._sounds.clear()
        self._initialized = False

    @property
    def is_available(self) -> bool:
        return self._initialized


# =============================================================================
# Stub backend
# =============================================================================

class StubPlayback(Playback):
    """Records playback state instead of rendering audio."""

    def __init__(self, sound_type: SoundType, volume: float, muted: bool, loop: bool):
        self.sound_type = sound_type
        self.volume = volume
        self.muted = muted
        self.loop = loop
        self.playing = True

    def set_volume(self, volume: float) -> None:
        self.volume = volume

    def set_muted(self, muted: bool) -> None:
        self.muted = muted

    def stop(self) -> None:
        self.playing = False


class StubBackend(AudioBackend):
    """
    Stub audio backend for hosts without an output device.

    Logs actions instead of playing.
    """

    def __init__(self):
        self.started: List[StubPlayback] = []

    def start(self, sound_type: SoundType, volume: float, muted: bool, loop: bool) -> Playback:
        logger.debug(f"Stub audio: {sound_type.value} volume={volume:.2f} muted={muted} loop={loop}")
        playback = StubPlayback(sound_type, volume, muted, loop)
        self.started.append(playback)
        return playback

    @property
    def is_available(self) -> bool:
        return True


def create_audio_backend(enabled: bool = True, num_channels: int = 8) -> AudioBackend:
    """
    Factory function to create appropriate audio backend.

    Returns PygameBackend when the mixer initializes, StubBackend otherwise.
    """
    if not enabled:
        logger.info("Audio disabled by configuration - using stub backend")
        return StubBackend()

    backend = PygameBackend(num_channels=num_channels)
    if backend.initialize():
        return backend

    logger.warning("Falling back to stub audio backend")
    return StubBackend()
