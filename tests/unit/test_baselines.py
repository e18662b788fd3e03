"""
Unit tests for rolling baselines.
"""

from datetime import datetime, timedelta, timezone

from sentinel.detection.baselines import BaselineTracker, RollingMean
from sentinel.events.schema import LLMRequest, LLMResponse, TelemetryEvent

T0 = datetime(2025, 2, 7, 12, 0, tzinfo=timezone.utc)


def _response(at: datetime, latency: float = 100.0, status: str = "ok", tokens=None) -> LLMResponse:
    return LLMResponse(
        request_id="req-1",
        response="text",
        latency_ms=latency,
        total_tokens=tokens,
        status=status,
        timestamp=at,
    )


def _observe(tracker: BaselineTracker, response: LLMResponse) -> None:
    tracker.observe_response(response, TelemetryEvent.from_exchange(response))


def test_rolling_mean_empty_is_zero():
    mean = RollingMean(window_size=3)
    assert mean.peek() == 0.0
    assert len(mean) == 0


def test_rolling_mean_ignores_missing_values():
    mean = RollingMean(window_size=3)
    mean.update(None)
    mean.update(4.0)
    assert mean.peek() == 4.0
    assert len(mean) == 1


def test_rolling_mean_window_evicts_oldest():
    mean = RollingMean(window_size=3)
    for value in (1.0, 2.0, 3.0, 4.0):
        mean.update(value)
    assert abs(mean.peek() - 3.0) < 1e-9


def test_tracker_latency_and_tokens():
    tracker = BaselineTracker(window_size=10)
    _observe(tracker, _response(T0, latency=100.0, tokens=50))
    _observe(tracker, _response(T0, latency=300.0, tokens=150))

    snapshot = tracker.snapshot(T0)
    assert snapshot.avg_latency_ms == 200.0
    assert snapshot.avg_token_count == 100.0
    assert snapshot.sample_count == 2
    assert tracker.average_latency() == 200.0


def test_tracker_cost_comes_from_requests():
    tracker = BaselineTracker()
    for cost in (1.0, 3.0, None):
        tracker.observe_request(
            LLMRequest(request_id="r", model="m", prompt="p", cost=cost, timestamp=T0)
        )
    assert tracker.snapshot(T0).avg_cost == 2.0


def test_error_count_is_time_windowed():
    tracker = BaselineTracker(error_window=timedelta(minutes=5))
    _observe(tracker, _response(T0, status="error"))
    _observe(tracker, _response(T0 + timedelta(minutes=4), status="error"))
    _observe(tracker, _response(T0 + timedelta(minutes=4), status="ok"))

    assert tracker.error_count(T0 + timedelta(minutes=4)) == 2
    assert tracker.error_count(T0 + timedelta(minutes=6)) == 1
    assert tracker.snapshot(T0 + timedelta(minutes=10)).error_count == 0
