"""
Schema for incident tracking and derived metrics.

Incidents are created only from high/critical findings. They move from open
to closed exactly once and are never deleted. Metrics snapshots are derived
on every query and never cached.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from backend.transport.schema import PublishFailure
from sentinel.detection.schema import FindingType, Severity


class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> Dict[str, object]:
        return self.model_dump(mode="json", by_alias=True)


class IncidentStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class Incident(_Wire):
    """
    A tracked, escalated finding.

    Required fields:
    - id: unique identifier
    - type / severity: copied from the escalated finding
    - request_id / user_id: correlation with the source event
    - description: finding description
    - status: open or closed
    - timestamp: creation time

    Set only when closed:
    - resolution: operator-supplied resolution text
    - closed_at: close time
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: FindingType
    severity: Severity
    request_id: str
    user_id: Optional[str] = None
    description: str
    status: IncidentStatus = IncidentStatus.OPEN
    timestamp: datetime
    resolution: Optional[str] = None
    closed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _closed_at_matches_status(self) -> "Incident":
        if (self.status == IncidentStatus.CLOSED) != (self.closed_at is not None):
            raise ValueError("closed_at must be set if and only if status is closed")
        return self

    @property
    def is_open(self) -> bool:
        return self.status == IncidentStatus.OPEN

    def closed(self, resolution: Optional[str], at: datetime) -> "Incident":
        """Return the closed version of this incident."""
        return self.model_copy(
            update={
                "status": IncidentStatus.CLOSED,
                "resolution": resolution,
                "closed_at": at,
            }
        )


class SafetyMetrics(_Wire):
    total_requests: int = Field(ge=0)
    total_incidents: int = Field(ge=0)
    open_incidents: int = Field(ge=0)
    safety_score: int = Field(ge=0, le=100)
    critical_incidents: int = Field(ge=0)
    high_incidents: int = Field(ge=0)
    mttr_minutes: int = Field(ge=0)


class CostAnalytics(_Wire):
    total_cost: float
    avg_cost_per_request: float
    cost_by_user: Dict[str, float]
    cost_by_model: Dict[str, float]


class RequestReceipt(_Wire):
    """Result of recording a request."""

    request_id: str
    timestamp: datetime
    warnings: List[PublishFailure] = Field(default_factory=list)


class ResponseReceipt(_Wire):
    """Result of recording a response."""

    anomaly_count: int = Field(ge=0)
    incident_ids: List[str] = Field(default_factory=list)
    warnings: List[PublishFailure] = Field(default_factory=list)
