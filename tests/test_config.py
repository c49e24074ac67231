"""
Unit tests for configuration loading and settings resolution.
"""

import pytest
import yaml

from guardian.alerts.types import Thresholds
from guardian.config import (
    Config,
    StaticSettingsProvider,
    load_config,
    resolve_effective_settings,
)


# =============================================================================
# load_config
# =============================================================================

class TestLoadConfig:

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "missing.yaml"))
        assert config == Config()
        assert config.thresholds.motion_sensitivity == 50
        assert config.thresholds.max_allowed_persons is None
        assert config.sound.max_concurrent == 3
        assert config.escalation.registry_capacity == 100

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(str(path)) == Config()

    def test_partial_sections(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            "thresholds": {"audio_threshold": 45, "max_allowed_persons": 1},
            "sound": {"user_volume": 30},
        }))

        config = load_config(str(path))

        assert config.thresholds.audio_threshold == 45
        assert config.thresholds.max_allowed_persons == 1
        assert config.thresholds.motion_sensitivity == 50
        assert config.sound.user_volume == 30
        assert config.sound.max_concurrent == 3
        assert config.security.arming_countdown_s == 30

    def test_scenarios_and_overrides(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            "thresholds": {"cooldown_overrides": {"intrusion": 10}},
            "scenarios": {"infant": {"audio_threshold": 40}},
            "active_scenario": "infant",
        }))

        config = load_config(str(path))

        assert config.thresholds.cooldown_overrides == {"intrusion": 10}
        assert config.scenarios == {"infant": {"audio_threshold": 40}}
        assert config.active_scenario == "infant"

    def test_malformed_yaml_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("thresholds: [unclosed")
        with pytest.raises(yaml.YAMLError):
            load_config(str(path))

    def test_project_config_loads(self):
        config = load_config()
        assert config.sound.user_volume == 70
        assert "away" in config.scenarios
        assert config.thresholds.cooldown_overrides["intrusion"] == 10


# =============================================================================
# resolve_effective_settings
# =============================================================================

class TestResolveEffectiveSettings:

    def test_no_override_returns_copy(self):
        base = Thresholds(cooldown_overrides={"motion": 3})
        resolved = resolve_effective_settings(base)

        assert resolved == base
        assert resolved is not base
        resolved.cooldown_overrides["audio"] = 1
        assert "audio" not in base.cooldown_overrides

    def test_override_wins_per_field(self):
        base = Thresholds(motion_sensitivity=50, audio_threshold=60)
        resolved = resolve_effective_settings(base, {"motion_sensitivity": 20})

        assert resolved.motion_sensitivity == 20
        assert resolved.audio_threshold == 60

    def test_none_values_ignored(self):
        base = Thresholds(audio_threshold=60)
        resolved = resolve_effective_settings(base, {"audio_threshold": None})
        assert resolved.audio_threshold == 60

    def test_unknown_keys_ignored(self):
        base = Thresholds()
        resolved = resolve_effective_settings(base, {"volume_knob": 11})
        assert resolved == base

    def test_inputs_not_mutated(self):
        base = Thresholds(cooldown_overrides={"motion": 3})
        override = {"cooldown_overrides": {"audio": 1}, "person_confidence": 0.9}

        resolved = resolve_effective_settings(base, override)

        assert resolved.cooldown_overrides == {"motion": 3, "audio": 1}
        assert base.cooldown_overrides == {"motion": 3}
        assert base.person_confidence == 0.6
        assert override == {"cooldown_overrides": {"audio": 1}, "person_confidence": 0.9}


# =============================================================================
# StaticSettingsProvider
# =============================================================================

class TestStaticSettingsProvider:

    def test_active_scenario_applied(self):
        config = Config(scenarios={"away": {"max_allowed_persons": 0}}, active_scenario="away")
        provider = StaticSettingsProvider(config)
        assert provider.get_thresholds().max_allowed_persons == 0

    def test_explicit_scenario_wins(self):
        config = Config(
            scenarios={"away": {"max_allowed_persons": 0}, "home": {"max_allowed_persons": 4}},
            active_scenario="away",
        )
        provider = StaticSettingsProvider(config, scenario="home")
        assert provider.get_thresholds().max_allowed_persons == 4

    def test_unknown_scenario_uses_globals(self):
        provider = StaticSettingsProvider(Config(), scenario="missing")
        assert provider.get_thresholds() == Thresholds()

    def test_reads_fresh(self):
        config = Config()
        provider = StaticSettingsProvider(config)
        config.thresholds.motion_sensitivity = 10
        config.sound.user_volume = 25
        config.sound.muted = True

        assert provider.get_thresholds().motion_sensitivity == 10
        assert provider.get_volume() == 25
        assert provider.is_muted() is True
        assert provider.is_emergency_mode_enabled() is False
