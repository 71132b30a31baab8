"""Shared fixtures for chatload tests."""

from datetime import UTC, datetime

import pytest

from chatload.config import RunConfig
from chatload.metrics.activity import ActivityLog
from chatload.metrics.aggregator import MetricsAggregator
from tests.fakes import FakeApi, FakeClock


@pytest.fixture
def fast_config() -> RunConfig:
    return RunConfig(
        total_users=3,
        batch_size=3,
        batch_delay_ms=0,
        messages_per_user=2,
        room_id="room-1",
        think_time_min_ms=0,
        think_time_max_ms=0,
        drain_seconds=0,
        reconnect_delay_seconds=0,
        report_interval_seconds=0.01,
    )


@pytest.fixture
def metrics() -> MetricsAggregator:
    return MetricsAggregator()


@pytest.fixture
def activity() -> ActivityLog:
    return ActivityLog(clock=lambda: datetime(2026, 3, 1, 12, 34, 56, tzinfo=UTC))


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
