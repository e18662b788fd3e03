"""
Incident manager.

Owns the retained requests, responses and incidents, runs classification on
every response, applies escalation plans, and derives safety and cost
metrics. One instance is one logical owner of incident state.
"""

from __future__ import annotations

from collections import OrderedDict, deque
from datetime import datetime, timedelta, timezone
import logging
import math
import threading
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Sequence
from uuid import uuid4

from pydantic import ValidationError

from backend.transport.publisher import EventPublisher, request_event, response_event
from sentinel.core.config import Config, config as default_config
from sentinel.core.exceptions import DataValidationError
from sentinel.detection import AnomalyClassifier, BaselineTracker, Finding, Severity
from sentinel.events.schema import LLMRequest, LLMResponse, TelemetryEvent

from .escalation import plan_escalation
from .schema import (
    CostAnalytics,
    Incident,
    RequestReceipt,
    ResponseReceipt,
    SafetyMetrics,
)

logger = logging.getLogger("backend.incident")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _missing(data: Mapping[str, Any], *fields: Sequence[str]) -> List[str]:
    """Names of required fields absent under every accepted spelling."""
    missing = []
    for spellings in fields:
        if not any(data.get(name) not in (None, "") for name in spellings):
            missing.append(spellings[0])
    return missing


class IncidentManager:
    """
    Stateful core of the pipeline.

    Concurrency:
    - Every mutation and every read of the retained collections happens
      under a single lock, so readers always see a consistent snapshot.
    - Classification runs outside the lock.
    - Publishing happens after state changes are committed; a publish
      failure is reported as a warning and never rolls back state.

    Retention:
    - Requests and responses are bounded windows; aggregates are defined
      over the retained window.
    - Incidents are never deleted. Once requests start being evicted, the
      safety metrics count only incidents created at or after the oldest
      retained request.
    """

    def __init__(
        self,
        publisher: EventPublisher,
        classifier: Optional[AnomalyClassifier] = None,
        settings: Optional[Config] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.settings = settings or default_config
        self.publisher = publisher
        self.classifier = classifier or AnomalyClassifier(thresholds=self.settings.thresholds)
        self._clock = clock or _utcnow
        self._lock = threading.RLock()

        retention = self.settings.retention
        self._max_requests = retention.max_requests
        self._requests: "OrderedDict[str, LLMRequest]" = OrderedDict()
        self._responses: Deque[LLMResponse] = deque(maxlen=retention.max_responses)
        self._incidents: List[Incident] = []
        self._window_start: Optional[datetime] = None
        self._baseline = BaselineTracker(
            window_size=self.settings.baseline.window_size,
            error_window=timedelta(minutes=self.settings.baseline.error_window_minutes),
        )

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def record_request(self, data: Mapping[str, Any]) -> RequestReceipt:
        """
        Record an inbound LLM request.

        Raises:
            DataValidationError: prompt or model missing or malformed.
        """
        missing = _missing(data, ("prompt",), ("model",))
        if missing:
            raise DataValidationError.missing(missing)

        fields = {k: v for k, v in data.items() if k not in {"requestId", "request_id", "timestamp"}}
        request = _build(
            LLMRequest, request_id=str(uuid4()), timestamp=self._clock(), **fields
        )

        with self._lock:
            self._requests[request.request_id] = request
            while len(self._requests) > self._max_requests:
                self._requests.popitem(last=False)
                self._window_start = next(iter(self._requests.values())).timestamp
            self._baseline.observe_request(request)

        warnings = self.publisher.publish_all([request_event(request)])
        logger.info("Request recorded: %s", request.request_id)
        return RequestReceipt(
            request_id=request.request_id, timestamp=request.timestamp, warnings=warnings
        )

    def record_response(self, data: Mapping[str, Any]) -> ResponseReceipt:
        """
        Record an LLM response, classify it, and escalate findings.

        Raises:
            DataValidationError: requestId or response missing or malformed.
        """
        missing = _missing(data, ("requestId", "request_id"), ("response",))
        if missing:
            raise DataValidationError.missing(missing)

        fields = {k: v for k, v in data.items() if k != "timestamp"}
        now = self._clock()
        response = _build(LLMResponse, timestamp=now, **fields)

        with self._lock:
            self._responses.append(response)
            request = self._requests.get(response.request_id)
            event = TelemetryEvent.from_exchange(response, request)
            self._baseline.observe_response(response, event)
            baseline = self._baseline.snapshot(now)

        findings = self.classifier.classify(event, baseline)
        plan = plan_escalation(findings, now)

        with self._lock:
            self._incidents.extend(plan.incidents)
        for incident in plan.incidents:
            logger.warning(
                "INCIDENT CREATED: %s (%s, severity=%s)",
                incident.type.value,
                incident.id,
                incident.severity.value,
            )
        _log_non_escalated(findings)

        warnings = self.publisher.publish_all(
            [response_event(response, event.user_id), *plan.outbound]
        )
        logger.info("Response handled: %s (%d findings)", response.request_id, len(findings))
        return ResponseReceipt(
            anomaly_count=len(findings),
            incident_ids=[i.id for i in plan.incidents],
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Incident lifecycle
    # ------------------------------------------------------------------

    def get_recent_incidents(self, count: int = 10) -> List[Incident]:
        """Most recently created first."""
        if count <= 0:
            return []
        with self._lock:
            newest_first = list(reversed(self._incidents))
        newest_first.sort(key=lambda i: i.timestamp, reverse=True)
        return newest_first[:count]

    def get_incident_details(self, incident_id: str) -> Optional[Incident]:
        with self._lock:
            index = self._index_of(incident_id)
            return self._incidents[index] if index is not None else None

    def close_incident(self, incident_id: str, resolution: Optional[str] = None) -> Optional[Incident]:
        """
        Close an open incident.

        Returns None for an unknown id. Closing an already closed incident
        returns it unchanged.
        """
        with self._lock:
            index = self._index_of(incident_id)
            if index is None:
                return None
            incident = self._incidents[index]
            if not incident.is_open:
                return incident
            closed = incident.closed(resolution, self._clock())
            self._incidents[index] = closed

        logger.info("Incident closed: %s", incident_id)
        return closed

    def _index_of(self, incident_id: str) -> Optional[int]:
        for index, incident in enumerate(self._incidents):
            if incident.id == incident_id:
                return index
        return None

    def _windowed_incidents(self) -> List[Incident]:
        if self._window_start is None:
            return list(self._incidents)
        return [i for i in self._incidents if i.timestamp >= self._window_start]

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def get_safety_metrics(self) -> SafetyMetrics:
        with self._lock:
            total_requests = len(self._requests)
            incidents = self._windowed_incidents()

        total_incidents = len(incidents)
        if total_requests:
            score = max(0.0, 100.0 - (total_incidents / total_requests) * 100.0)
        else:
            score = 100.0

        return SafetyMetrics(
            total_requests=total_requests,
            total_incidents=total_incidents,
            open_incidents=sum(1 for i in incidents if i.is_open),
            safety_score=_round_half_up(score),
            critical_incidents=sum(1 for i in incidents if i.severity == Severity.CRITICAL),
            high_incidents=sum(1 for i in incidents if i.severity == Severity.HIGH),
            mttr_minutes=_mttr_minutes(incidents),
        )

    def get_cost_analytics(self) -> CostAnalytics:
        with self._lock:
            requests = list(self._requests.values())

        total = 0.0
        by_user: Dict[str, float] = {}
        by_model: Dict[str, float] = {}
        for request in requests:
            cost = request.cost or 0.0
            total += cost
            user = request.user_id or "anonymous"
            model = request.model or "unknown"
            by_user[user] = by_user.get(user, 0.0) + cost
            by_model[model] = by_model.get(model, 0.0) + cost

        average = total / len(requests) if requests else 0.0
        return CostAnalytics(
            total_cost=round(total, 2),
            avg_cost_per_request=round(average, 4),
            cost_by_user=by_user,
            cost_by_model=by_model,
        )

    def average_latency(self) -> float:
        with self._lock:
            return self._baseline.average_latency()

    def request_count(self) -> int:
        with self._lock:
            return len(self._requests)

    def response_count(self) -> int:
        with self._lock:
            return len(self._responses)


def _mttr_minutes(incidents: Sequence[Incident]) -> int:
    repairs = [
        (i.closed_at - i.timestamp).total_seconds() / 60.0
        for i in incidents
        if not i.is_open and i.closed_at is not None
    ]
    if not repairs:
        return 0
    return _round_half_up(sum(repairs) / len(repairs))


def _build(model_cls, /, **fields):
    try:
        return model_cls(**fields)
    except ValidationError as exc:
        names = [".".join(str(p) for p in err["loc"]) for err in exc.errors()]
        raise DataValidationError(f"Invalid {model_cls.__name__}: {exc.error_count()} error(s)", names) from exc


def _log_non_escalated(findings: Sequence[Finding]) -> None:
    for finding in findings:
        if not finding.severity.escalates:
            logger.info("Anomaly detected: %s (%s)", finding.type.value, finding.severity.value)
