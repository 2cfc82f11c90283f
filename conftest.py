"""Pytest configuration for Charity Python Toolkit."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from charity_toolkit.activity_log import ActivityLogService
from charity_toolkit.config import CharityConfig, set_config
from charity_toolkit.document_store import InMemoryDocumentStore
from charity_toolkit.recycle_bin import RecycleBinService
from charity_toolkit.settings import SettingsService

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock; optionally advances by ``step`` on every read."""

    def __init__(self, start: datetime = T0, step: Optional[timedelta] = None):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        if self.step:
            self.now = self.now + self.step
        return current

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line("markers", "sql: test runs against the SQL backend")


@pytest.fixture(autouse=True)
def test_config():
    """Install a known configuration for every test."""
    config = CharityConfig(environment="test", store_backend="memory")
    set_config(config)
    yield config
    set_config(None)  # type: ignore[arg-type]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryDocumentStore(clock=clock)


@pytest.fixture
def settings_service(store):
    return SettingsService(store)


@pytest.fixture
def activity_log(store):
    return ActivityLogService(store)


@pytest.fixture
def recycle_bin(store, settings_service, activity_log, test_config):
    return RecycleBinService(
        store,
        settings=settings_service,
        activity_log=activity_log,
        config=test_config,
    )
