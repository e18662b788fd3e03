"""
Event publisher.

Maps outbound events to topics and hands them to a transport. Transport
errors are converted into PublishFailure values and logged; they never
propagate into the caller's state changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from sentinel.core.config import TopicNames, config
from sentinel.events.schema import LLMRequest, LLMResponse

from .schema import EventKind, OutboundEvent, PublishFailure

logger = logging.getLogger("backend.transport")

UNKNOWN_KEY = "unknown"


class Transport(Protocol):
    """Keyed, ordered, at-least-once log."""

    def publish(self, topic: str, key: str, value: Dict[str, Any], timestamp: datetime) -> None:
        ...


@dataclass(frozen=True)
class PublishedRecord:
    topic: str
    key: str
    value: Dict[str, Any]
    timestamp: datetime


@dataclass
class InMemoryTransport:
    """
    Transport that keeps records in process.

    Used when no broker is configured and in tests.
    """

    records: List[PublishedRecord] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def publish(self, topic: str, key: str, value: Dict[str, Any], timestamp: datetime) -> None:
        with self._lock:
            self.records.append(PublishedRecord(topic, key, value, timestamp))

    def by_topic(self, topic: str) -> List[PublishedRecord]:
        with self._lock:
            return [r for r in self.records if r.topic == topic]


def request_event(request: LLMRequest) -> OutboundEvent:
    return OutboundEvent(
        kind=EventKind.REQUEST,
        key=request.user_id or UNKNOWN_KEY,
        payload=request.to_wire(),
        timestamp=request.timestamp,
    )


def response_event(response: LLMResponse, user_id: Optional[str] = None) -> OutboundEvent:
    """Key by the joined user so responses order with their requests."""
    return OutboundEvent(
        kind=EventKind.RESPONSE,
        key=user_id or response.user_id or UNKNOWN_KEY,
        payload=response.to_wire(),
        timestamp=response.timestamp,
    )


class EventPublisher:
    """
    Publishes outbound events to their topics.

    Every payload gets a "publishedAt" timestamp next to its own
    "timestamp", and a "type" field naming the event kind.
    """

    def __init__(
        self,
        transport: Transport,
        topics: Optional[TopicNames] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.transport = transport
        self.topics = topics or config.transport.topics
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def topic_for(self, kind: EventKind) -> str:
        return {
            EventKind.REQUEST: self.topics.requests,
            EventKind.RESPONSE: self.topics.responses,
            EventKind.ANOMALY: self.topics.anomalies,
            EventKind.ALERT: self.topics.alerts,
        }[kind]

    def publish(self, event: OutboundEvent) -> Optional[PublishFailure]:
        topic = self.topic_for(event.kind)
        value = dict(event.payload)
        value.setdefault("type", event.kind.value)
        value["publishedAt"] = self._clock().isoformat()

        try:
            self.transport.publish(topic, event.key, value, event.timestamp)
        except Exception as exc:
            logger.error("Failed to publish %s to %s (key=%s): %s", event.kind.value, topic, event.key, exc)
            return PublishFailure(kind=event.kind, topic=topic, key=event.key, error=str(exc))
        return None

    def publish_all(self, events: Iterable[OutboundEvent]) -> List[PublishFailure]:
        failures = []
        for event in events:
            failure = self.publish(event)
            if failure is not None:
                failures.append(failure)
        return failures
