#!/usr/bin/env python3
"""
Global pytest configuration and fixtures.

This module provides:
- Platform-specific test skipping (macOS/EventKit tests)
- A controllable clock and the in-memory FakeStore
- An engine factory wired to both
"""

import os
import platform
import sys
import tempfile
import shutil
from datetime import datetime, timedelta
from typing import Generator
from zoneinfo import ZoneInfo

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cal_sync.core.models import ClientConfig
from cal_sync.sync.engine import SyncEngine
from cal_sync.sync.window import TimeWindow
from tests.fake_store import FakeStore

TZ_NAME = "America/New_York"
TZ = ZoneInfo(TZ_NAME)

HAS_EVENTKIT = False

try:
    if platform.system() == "Darwin":
        import objc
        import EventKit
        HAS_EVENTKIT = True
except ImportError:
    pass


def pytest_configure(config):
    """Configure pytest environment."""
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: tests spanning several components")
    config.addinivalue_line("markers", "eventkit: test requires the EventKit framework")


def pytest_collection_modifyitems(config, items):
    """Skip tests that need the real EventKit framework when it is missing."""
    skip_eventkit = pytest.mark.skip(reason="Test requires EventKit framework")
    for item in items:
        if "eventkit" in item.keywords and not HAS_EVENTKIT:
            item.add_marker(skip_eventkit)


def local(year, month, day, hour=0, minute=0, second=0, microsecond=0):
    """Aware datetime in the test zone."""
    return datetime(year, month, day, hour, minute, second, microsecond, tzinfo=TZ)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# Common test fixtures

@pytest.fixture
def temp_dir() -> Generator[str, None, None]:
    """Create a temporary directory for test isolation."""
    temp_path = tempfile.mkdtemp(prefix="cal_sync_test_")
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(local(2024, 6, 12, 10, 0))


@pytest.fixture
def window() -> TimeWindow:
    return TimeWindow(TZ_NAME, first_weekday=6)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(time_zone=TZ_NAME)


@pytest.fixture
def saved_configs():
    return []


@pytest.fixture
def make_engine(store, config, clock, window, saved_configs):
    """Factory so tests can override collaborators before construction."""

    def factory(**overrides) -> SyncEngine:
        target_store = overrides.pop("store", store)
        target_config = overrides.pop("config", config)
        kwargs = dict(
            window=window,
            clock=clock,
            config_saver=lambda cfg: saved_configs.append(cfg.to_dict()),
        )
        kwargs.update(overrides)
        return SyncEngine(target_store, target_config, **kwargs)

    return factory


@pytest.fixture
def engine(make_engine) -> SyncEngine:
    return make_engine()
