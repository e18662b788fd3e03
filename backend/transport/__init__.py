"""
Transport adapters: keyed event publishing, Kafka, and the sink forwarder.
"""

from .publisher import (
    EventPublisher,
    InMemoryTransport,
    PublishedRecord,
    Transport,
    request_event,
    response_event,
)
from .schema import ConsumedRecord, EventKind, OutboundEvent, PublishFailure

__all__ = [
    "EventPublisher",
    "InMemoryTransport",
    "PublishedRecord",
    "Transport",
    "request_event",
    "response_event",
    "ConsumedRecord",
    "EventKind",
    "OutboundEvent",
    "PublishFailure",
]
