"""
Rolling baseline estimation for relative-threshold rules.

Provides bounded rolling means for latency, token count and cost, plus a
time-windowed error counter. Means are recomputed from the window on every
peek, so there is no accumulated floating-point drift.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Deque, Optional

from sentinel.events.schema import LLMRequest, LLMResponse, ResponseStatus, TelemetryEvent

from .schema import BaselineSnapshot


@dataclass
class RollingMean:
    """
    Bounded rolling mean.

    Returns 0.0 when no samples have been observed.
    """

    window_size: int
    _values: Deque[float] = None

    def __post_init__(self) -> None:
        self._values = deque(maxlen=self.window_size)

    def update(self, value: Optional[float]) -> None:
        if value is None:
            return
        self._values.append(float(value))

    def peek(self) -> float:
        if not self._values:
            return 0.0
        return sum(self._values) / len(self._values)

    def __len__(self) -> int:
        return len(self._values)


@dataclass
class BaselineTracker:
    """
    Rolling aggregates over recently recorded traffic.

    Responses feed latency, token and error statistics; requests feed cost.
    Not thread-safe on its own: the owning IncidentManager serializes access.
    """

    window_size: int = 1000
    error_window: timedelta = timedelta(minutes=5)
    _latency: RollingMean = field(init=False)
    _tokens: RollingMean = field(init=False)
    _cost: RollingMean = field(init=False)
    _errors: Deque[datetime] = field(init=False)
    _responses: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self._latency = RollingMean(self.window_size)
        self._tokens = RollingMean(self.window_size)
        self._cost = RollingMean(self.window_size)
        self._errors = deque(maxlen=self.window_size)

    def observe_request(self, request: LLMRequest) -> None:
        self._cost.update(request.cost)

    def observe_response(self, response: LLMResponse, event: TelemetryEvent) -> None:
        self._latency.update(response.latency_ms)
        self._tokens.update(event.token_count)
        if response.status == ResponseStatus.ERROR:
            self._errors.append(response.timestamp)
        self._responses = min(self._responses + 1, self.window_size)

    def average_latency(self) -> float:
        return self._latency.peek()

    def error_count(self, now: datetime) -> int:
        cutoff = now - self.error_window
        return sum(1 for ts in self._errors if ts >= cutoff)

    def snapshot(self, now: datetime) -> BaselineSnapshot:
        return BaselineSnapshot(
            avg_latency_ms=self._latency.peek(),
            avg_token_count=self._tokens.peek(),
            avg_cost=self._cost.peek(),
            error_count=self.error_count(now),
            sample_count=self._responses,
        )
