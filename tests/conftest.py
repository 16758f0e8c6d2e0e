"""Pytest configuration and shared fixtures."""

import pytest

from continuum_app.engine import PeriodLifecycleEngine
from continuum_app.persistence.period_store import PeriodStore
from continuum_app.utils.time import ManualClock

# 2023-11-14T22:13:20Z
T0 = 1_700_000_000_000


@pytest.fixture
def clock() -> ManualClock:
    """Deterministic clock starting at T0."""
    return ManualClock(T0)


@pytest.fixture
def store():
    """Initialized in-memory period store."""
    period_store = PeriodStore().init()
    yield period_store
    period_store.close()


@pytest.fixture
def file_store(tmp_path):
    """Initialized on-disk period store in a temporary directory."""
    period_store = PeriodStore(tmp_path / "continuum.db").init()
    yield period_store
    period_store.close()


@pytest.fixture
def engine(store, clock) -> PeriodLifecycleEngine:
    """Engine over the in-memory store and manual clock."""
    return PeriodLifecycleEngine(store, clock=clock)
