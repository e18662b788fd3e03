"""
Outbound event schema for the transport layer.

OutboundEvent is what pure decision code produces; the publisher is the only
component that turns it into a transport call.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class EventKind(str, Enum):
    REQUEST = "request"
    RESPONSE = "response"
    ANOMALY = "anomaly"
    ALERT = "alert"


class OutboundEvent(BaseModel):
    """
    One record destined for a topic.

    Fields:
    - kind: selects the topic
    - key: partition key (same key => total order on the transport)
    - payload: JSON-serializable body
    - timestamp: event-intrinsic time
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    key: str
    payload: Dict[str, Any]
    timestamp: datetime


class PublishFailure(BaseModel):
    """Non-fatal publish error reported back to the caller."""

    kind: EventKind
    topic: str
    key: str
    error: str


class ConsumedRecord(BaseModel):
    topic: str
    partition: int = 0
    offset: Optional[int] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
