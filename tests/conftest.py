"""
Pytest configuration and shared fixtures.

Provides a controllable clock, an in-memory transport, a ready-wired
IncidentManager, and sample telemetry payloads.
"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from backend.incident import IncidentManager
from backend.transport import EventPublisher, InMemoryTransport
from sentinel.core.config import Config, DetectionThresholds
from sentinel.detection import BaselineSnapshot
from sentinel.events.schema import TelemetryEvent


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 2, 7, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def test_config(tmp_path) -> Config:
    """
    Configuration with explicit values (not from .env).

    Keeps log files out of the working tree and retention small enough to
    exercise eviction.
    """
    return Config(
        log_level="WARNING",
        logs_dir=tmp_path / "logs",
        retention={"max_requests": 50, "max_responses": 50},
    )


@pytest.fixture
def thresholds() -> DetectionThresholds:
    return DetectionThresholds()


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def manager(transport, clock, test_config) -> IncidentManager:
    publisher = EventPublisher(transport, test_config.transport.topics, clock=clock)
    return IncidentManager(publisher, settings=test_config, clock=clock)


@pytest.fixture
def make_event(clock):
    """Factory for telemetry events with sensible defaults."""

    def _make(**overrides: Any) -> TelemetryEvent:
        fields: Dict[str, Any] = {
            "request_id": "req-1",
            "user_id": "u1",
            "model": "gpt-x",
            "timestamp": clock(),
        }
        fields.update(overrides)
        return TelemetryEvent(**fields)

    return _make


@pytest.fixture
def empty_baseline() -> BaselineSnapshot:
    return BaselineSnapshot()


@pytest.fixture
def sample_request() -> Dict[str, Any]:
    return {"userId": "u1", "model": "gpt-x", "prompt": "hello", "cost": 1}


@pytest.fixture
def sample_response() -> Dict[str, Any]:
    return {"response": "hi there", "latencyMs": 500, "confidenceScore": 0.9}


def pytest_configure(config):
    """
    Pytest hook for custom configuration.

    Registers custom markers used throughout tests.
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running (deferred CI)"
    )
