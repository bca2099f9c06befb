"""
Shared fixtures. Nothing here touches real speech, audio, camera, network
or location.
"""
from unittest.mock import MagicMock

import numpy as np
import pytest

from response.emergency_alert import AlertComposer, Location, RecordingComposer
from response.escalation import EmergencyEscalation
from response.haptics import LoggingHaptics
from response.settings import AlertSettings, EmergencyContact

FAST_TICK = 0.005


class FakeClock:
    """Manually advanced seconds counter."""

    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingObserver:
    def __init__(self):
        self.ticks = []
        self.timeouts = 0
        self.cancels = 0

    def on_tick(self, remaining):
        self.ticks.append(remaining)

    def on_timeout(self):
        self.timeouts += 1

    def on_cancel(self):
        self.cancels += 1


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def contacts():
    return [
        EmergencyContact("Susan", "+12125551234"),
        EmergencyContact("David", "+13105559876"),
    ]


@pytest.fixture
def settings(contacts):
    return AlertSettings(user_name="Margaret", contacts=list(contacts))


@pytest.fixture
def location_provider():
    provider = MagicMock()
    provider.has_permission.return_value = True
    provider.last_known_location.return_value = Location(40.7128, -74.0060, 12.0)
    return provider


@pytest.fixture
def recorder():
    return RecordingComposer()


@pytest.fixture
def alert_composer(recorder, location_provider):
    composer = AlertComposer(recorder, location_provider, location_timeout=1.0)
    yield composer
    composer.close()


@pytest.fixture
def make_escalation(settings, alert_composer):
    """
    Builds countdowns with a millisecond tick. Every countdown is stopped
    and joined afterwards so the process-wide slot is free for the next test.
    """
    created = []

    def _make(**overrides):
        kwargs = dict(
            settings=settings,
            composer=alert_composer,
            speech=MagicMock(),
            haptics=LoggingHaptics(),
            observer=RecordingObserver(),
            tick_interval=FAST_TICK,
        )
        kwargs.update(overrides)
        escalation = EmergencyEscalation(**kwargs)
        created.append(escalation)
        return escalation

    yield _make

    for escalation in created:
        escalation.stop()
        escalation.join(timeout=5)
