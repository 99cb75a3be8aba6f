"""Pytest fixtures for orbiter unit tests.

Provides:
- clock: manually advanced clock (seconds) injected into the registry
- registry: ParameterRegistry driven by that clock
- RecordingController: controller that records every callback
"""

import pytest

from orbiter.parameters import Controller, ParameterRegistry


class FakeClock:
    """Manually advanced clock. Starts at 0.0 seconds."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0

    def set_ms(self, ms: float) -> None:
        self.now = ms / 1000.0


class RecordingController(Controller):
    """Controller that records every notification it receives."""

    def __init__(self, label: str = "controller"):
        self.label = label
        self.values = []
        self.ranges = []
        self.scales = []

    def on_parameter_changed(self, name, value):
        self.values.append((name, value))

    def on_range_changed(self, name, min_value, max_value):
        self.ranges.append((name, min_value, max_value))

    def on_scale_changed(self, name, scale):
        self.scales.append((name, scale))

    def clear(self):
        self.values.clear()
        self.ranges.clear()
        self.scales.clear()

    def __repr__(self):
        return f"RecordingController({self.label!r})"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return ParameterRegistry(clock=clock)


@pytest.fixture
def recorder():
    return RecordingController("recorder")


@pytest.fixture
def make_controller():
    """Factory for additional RecordingControllers: make_controller("X")."""
    return RecordingController
