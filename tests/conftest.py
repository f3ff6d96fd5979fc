"""Shared fixtures."""

from __future__ import annotations

import pytest

from tests.fakes import FakeClock, SteppingSleep


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stepping_sleep(clock: FakeClock) -> SteppingSleep:
    return SteppingSleep(clock)
