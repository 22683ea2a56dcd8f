"""
Shared fixtures for the opencode-otel tests.
"""

from typing import Any

import pytest

from tests.harness import FakeClock, Harness, make_config


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_harness(clock):
    def _make(**overrides: Any) -> Harness:
        return Harness(make_config(**overrides), clock)

    return _make


@pytest.fixture
def harness(make_harness) -> Harness:
    return make_harness()
