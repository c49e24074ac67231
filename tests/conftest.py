"""Shared fixtures for the Guardian alert core tests."""

import sys
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from guardian.alerts import (
    AlertEngine,
    AlertRegistry,
    EscalationScheduler,
    ThresholdEvaluator,
    Thresholds,
)
from guardian.audio import SoundEngine, StubBackend
from guardian.config import Config, StaticSettingsProvider
from guardian.interfaces import AlertStore, Notifier
from guardian.utils.timing import VirtualScheduler


WALL_CLOCK_START = 1_700_000_000.0


@pytest.fixture
def scheduler():
    """Virtual clock scheduler starting at t=0."""
    return VirtualScheduler()


@pytest.fixture
def wall_clock(scheduler):
    """Epoch clock that moves with the virtual scheduler."""
    return lambda: WALL_CLOCK_START + scheduler.now()


@pytest.fixture
def backend():
    return StubBackend()


@pytest.fixture
def sound_engine(backend, scheduler):
    return SoundEngine(backend=backend, scheduler=scheduler, max_concurrent=3, user_volume=70)


@pytest.fixture
def evaluator(scheduler, wall_clock):
    return ThresholdEvaluator(clock=scheduler.now, wall_clock=wall_clock)


@pytest.fixture
def config():
    """Default config with a short cooldown."""
    cfg = Config()
    cfg.thresholds = Thresholds(cooldown_seconds=5.0)
    return cfg


@pytest.fixture
def settings(config):
    return StaticSettingsProvider(config)


@pytest.fixture
def store():
    return Mock(spec=AlertStore)


@pytest.fixture
def notifier():
    return Mock(spec=Notifier)


@pytest.fixture
def escalation(scheduler, sound_engine):
    return EscalationScheduler(scheduler, sound_engine=sound_engine)


@pytest.fixture
def alert_engine(evaluator, escalation, sound_engine, settings, store, notifier, wall_clock):
    """Fully wired alert engine on the virtual clock."""
    return AlertEngine(
        evaluator=evaluator,
        registry=AlertRegistry(capacity=100),
        escalation=escalation,
        sound_engine=sound_engine,
        settings=settings,
        store=store,
        notifier=notifier,
        wall_clock=wall_clock,
    )
