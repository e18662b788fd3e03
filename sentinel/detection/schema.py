"""
Schema definitions for rule-based detection.

Findings are values, not entities: they carry no identifier and are never
mutated. Evidence is kind-specific and never contains the matched text of
sensitive content.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Severity levels for findings."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def escalates(self) -> bool:
        return self in (Severity.HIGH, Severity.CRITICAL)


class FindingType(str, Enum):
    PII_IN_REQUEST = "PII_IN_REQUEST"
    PII_LEAKAGE = "PII_LEAKAGE"
    TOXIC_CONTENT = "TOXIC_CONTENT"
    PROMPT_INJECTION = "PROMPT_INJECTION"
    TOKEN_ANOMALY = "TOKEN_ANOMALY"
    COST_ANOMALY = "COST_ANOMALY"
    PERFORMANCE_DEGRADATION = "PERFORMANCE_DEGRADATION"
    HALLUCINATION = "HALLUCINATION"
    ERROR_SPIKE = "ERROR_SPIKE"


class PIICategory(str, Enum):
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    SSN = "SSN"
    CREDIT_CARD = "CREDIT_CARD"
    API_KEY = "API_KEY"


class BaselineSnapshot(BaseModel):
    """
    Rolling aggregates over the retained window.

    Fields:
    - avg_latency_ms: mean response latency (0.0 when empty)
    - avg_token_count: mean token count (0.0 when empty)
    - avg_cost: mean request cost (0.0 when empty)
    - error_count: error responses inside the error window
    - sample_count: responses in the window
    """

    model_config = ConfigDict(frozen=True)

    avg_latency_ms: float = 0.0
    avg_token_count: float = 0.0
    avg_cost: float = 0.0
    error_count: int = 0
    sample_count: int = 0


class Finding(BaseModel):
    """
    A single rule-detected condition on one event.

    Fields:
    - type: finding kind
    - severity: categorical severity
    - description: short human-readable reason
    - evidence: structured, kind-specific detail
    - request_id / user_id: correlation with the source event
    - timestamp: event time
    """

    model_config = ConfigDict(frozen=True)

    type: FindingType
    severity: Severity
    description: str
    evidence: Dict[str, Any] = Field(default_factory=dict)
    request_id: str
    user_id: Optional[str] = None
    timestamp: datetime
