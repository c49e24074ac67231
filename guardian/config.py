"""
Configuration management for the Guardian alert core.

Handles loading, validation, and access to configuration, plus the pure
settings overlay used for per-scenario threshold overrides.
"""

import dataclasses
import logging
import yaml
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from pathlib import Path

from guardian.alerts.types import Thresholds
from guardian.interfaces import SettingsProvider

logger = logging.getLogger(__name__)


@dataclass
class SystemConfig:
    """Top-level system configuration."""
    log_level: str = "INFO"
    log_file: str = "alerts.jsonl"
    flush_interval_s: float = 1.0


@dataclass
class EscalationConfig:
    """Alert registry and escalation configuration."""
    enabled: bool = True
    repeat_at_max: bool = True
    registry_capacity: int = 100


@dataclass
class SoundConfig:
    """Sound engine configuration."""
    enabled: bool = True
    max_concurrent: int = 3
    user_volume: float = 70.0
    muted: bool = False
    emergency_mode_enabled: bool = False


@dataclass
class SecurityConfig:
    """Intrusion arming configuration."""
    arming_countdown_s: int = 30
    trigger_cooldown_s: float = 10.0
    max_stored_frames: int = 50
    siren_enabled: bool = True
    siren_max_volume: bool = True


@dataclass
class Config:
    """Complete configuration."""
    system: SystemConfig = field(default_factory=SystemConfig)
    thresholds: Thresholds = field(default_factory=Thresholds)
    scenarios: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    active_scenario: Optional[str] = None
    escalation: EscalationConfig = field(default_factory=EscalationConfig)
    sound: SoundConfig = field(default_factory=SoundConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)


THRESHOLD_FIELDS = {f.name for f in dataclasses.fields(Thresholds)}


def resolve_effective_settings(
    global_settings: Thresholds,
    override: Optional[Mapping[str, Any]] = None,
) -> Thresholds:
    """
    Overlay per-scenario overrides onto global thresholds.

    Override wins per field; None values and unknown keys are ignored.
    Neither input is modified.

    Args:
        global_settings: Global thresholds
        override: Partial field mapping (or None)

    Returns:
        New Thresholds instance
    """
    if not override:
        return dataclasses.replace(
            global_settings, cooldown_overrides=dict(global_settings.cooldown_overrides)
        )

    changes: Dict[str, Any] = {}
    for key, value in override.items():
        if key not in THRESHOLD_FIELDS:
            logger.warning(f"Ignoring unknown threshold override: {key}")
            continue
        if value is None:
            continue
        changes[key] = value

    if "cooldown_overrides" in changes:
        merged = dict(global_settings.cooldown_overrides)
        merged.update(changes["cooldown_overrides"])
        changes["cooldown_overrides"] = merged
    else:
        changes["cooldown_overrides"] = dict(global_settings.cooldown_overrides)

    return dataclasses.replace(global_settings, **changes)


class StaticSettingsProvider(SettingsProvider):
    """
    Settings provider backed by a Config object.

    Thresholds are resolved fresh on every call so config edits and
    scenario switches take effect without restarting anything.
    """

    def __init__(self, config: Optional[Config] = None, scenario: Optional[str] = None):
        self.config = config or Config()
        self.scenario = scenario if scenario is not None else self.config.active_scenario

    def get_thresholds(self) -> Thresholds:
        override = None
        if self.scenario:
            override = self.config.scenarios.get(self.scenario)
            if override is None:
                logger.warning(f"Unknown scenario '{self.scenario}' - using global thresholds")
        return resolve_effective_settings(self.config.thresholds, override)

    def get_volume(self) -> float:
        return self.config.sound.user_volume

    def is_muted(self) -> bool:
        return self.config.sound.muted

    def is_emergency_mode_enabled(self) -> bool:
        return self.config.sound.emergency_mode_enabled


def _parse_thresholds(data: Dict[str, Any]) -> Thresholds:
    """Parse thresholds from config dict."""
    defaults = Thresholds()
    return Thresholds(
        motion_sensitivity=data.get("motion_sensitivity", defaults.motion_sensitivity),
        audio_threshold=data.get("audio_threshold", defaults.audio_threshold),
        person_confidence=data.get("person_confidence", defaults.person_confidence),
        animal_confidence=data.get("animal_confidence", defaults.animal_confidence),
        inactivity_timeout_min=data.get("inactivity_timeout_min", defaults.inactivity_timeout_min),
        max_allowed_persons=data.get("max_allowed_persons", defaults.max_allowed_persons),
        cooldown_seconds=data.get("cooldown_seconds", defaults.cooldown_seconds),
        cooldown_overrides=dict(data.get("cooldown_overrides") or {}),
    )


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default config.yaml

    Returns:
        Populated Config object (defaults when the file does not exist)

    Raises:
        yaml.YAMLError: If config file is malformed
    """
    if config_path is None:
        # Look for config.yaml in project root
        config_path = Path(__file__).parent.parent / "config.yaml"
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        logger.info(f"No config at {config_path} - using defaults")
        return Config()

    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}

    config = Config()

    # Parse system config
    if "system" in data:
        sys_data = data["system"] or {}
        config.system = SystemConfig(
            log_level=sys_data.get("log_level", "INFO"),
            log_file=sys_data.get("log_file", "alerts.jsonl"),
            flush_interval_s=sys_data.get("flush_interval_s", 1.0),
        )

    # Parse thresholds
    if "thresholds" in data:
        config.thresholds = _parse_thresholds(data["thresholds"] or {})

    # Parse scenario overrides
    if "scenarios" in data:
        config.scenarios = {
            name: dict(values or {}) for name, values in (data["scenarios"] or {}).items()
        }
    config.active_scenario = data.get("active_scenario")

    # Parse escalation config
    if "escalation" in data:
        esc_data = data["escalation"] or {}
        config.escalation = EscalationConfig(
            enabled=esc_data.get("enabled", True),
            repeat_at_max=esc_data.get("repeat_at_max", True),
            registry_capacity=esc_data.get("registry_capacity", 100),
        )

    # Parse sound config
    if "sound" in data:
        sound_data = data["sound"] or {}
        config.sound = SoundConfig(
            enabled=sound_data.get("enabled", True),
            max_concurrent=sound_data.get("max_concurrent", 3),
            user_volume=sound_data.get("user_volume", 70.0),
            muted=sound_data.get("muted", False),
            emergency_mode_enabled=sound_data.get("emergency_mode_enabled", False),
        )

    # Parse security config
    if "security" in data:
        sec_data = data["security"] or {}
        config.security = SecurityConfig(
            arming_countdown_s=sec_data.get("arming_countdown_s", 30),
            trigger_cooldown_s=sec_data.get("trigger_cooldown_s", 10.0),
            max_stored_frames=sec_data.get("max_stored_frames", 50),
            siren_enabled=sec_data.get("siren_enabled", True),
            siren_max_volume=sec_data.get("siren_max_volume", True),
        )

    return config
