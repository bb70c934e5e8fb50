import pytest
from lore_engine import create_engine
from lore_engine.core.directives import DecoratedDialect, PlainDialect
from lore_engine.core.engine import LoreEngine
from lore_engine.dto.settings_dto import EngineSettingsDTO
from config import EngineTestingConfig


class FakeTokenEstimator:
    """One token per whitespace-separated word."""
    def estimate(self, text):
        return len(text.split())


class FixedRng:
    """Returns the given values in order, repeating the last one."""
    def __init__(self, *values):
        self.values = list(values) or [0.0]
        self.calls = 0

    def random(self):
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        return value


class FakeTimedEffects:
    def __init__(self, sticky=(), cooldown=(), delayed=()):
        self.sticky = set(sticky)
        self.cooldown = set(cooldown)
        self.delayed = set(delayed)

    def sticky_active(self, entry_id):
        return entry_id in self.sticky

    def cooldown_active(self, entry_id):
        return entry_id in self.cooldown

    def delay_active(self, entry):
        return entry.id in self.delayed


class RecordingWarner:
    def __init__(self):
        self.warnings = []

    def warn(self, message, key=None):
        self.warnings.append((message, key))


@pytest.fixture
def fixed_rng():
    return FixedRng

@pytest.fixture
def fake_effects():
    return FakeTimedEffects

@pytest.fixture
def warner():
    return RecordingWarner()

@pytest.fixture
def make_engine():
    def factory(dialect='plain', rng=None, token_estimator=None, warner=None, **settings):
        return LoreEngine(
            settings=EngineSettingsDTO(dialect=dialect, **settings),
            dialect=DecoratedDialect() if dialect == 'decorated' else PlainDialect(),
            token_estimator=token_estimator or FakeTokenEstimator(),
            rng=rng or FixedRng(0.0),
            warner=warner,
        )
    return factory

@pytest.fixture(scope='module')
def engine():
    return create_engine(EngineTestingConfig, token_estimator=FakeTokenEstimator(), rng=FixedRng(0.0))
