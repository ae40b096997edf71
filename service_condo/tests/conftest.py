"""
Shared fixtures for the service tests.
"""

import pytest

from condo_shared.config import Settings
from service_condo.test_helpers import FakeClock, FakeStore


@pytest.fixture
def clock():
    """Manually advanced clock."""
    return FakeClock()


@pytest.fixture
def store(clock):
    """Ready in-memory store sharing the test clock."""
    return FakeStore(clock)


@pytest.fixture
def down_store(clock):
    """Store that never became ready."""
    return FakeStore(clock, ready=False)


@pytest.fixture
def settings():
    """Settings isolated from the host environment."""
    return Settings(
        _env_file=None,
        log_level="warning",
        rate_limit_window=15,
        rate_limit_max=100,
        redis_health_check_interval=0,
    )
