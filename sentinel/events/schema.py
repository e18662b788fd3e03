"""
Canonical telemetry schema for LLM traffic.

Requests and responses are recorded once and never modified. Wire payloads
use camelCase keys (userId, latencyMs, ...); Python code uses snake_case.
Both spellings are accepted on input.

Design rationale:
- Optional signals stay None when absent so rules can skip them
- All timestamps are UTC
- TelemetryEvent is the single shape the classifier sees
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models that travel as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ResponseStatus(str, Enum):
    OK = "ok"
    ERROR = "error"


class LLMRequest(WireModel):
    """
    A single prompt submitted to a model.

    Attributes:
        request_id: identifier assigned on ingest
        user_id: caller identity (None when anonymous)
        model: target model name
        prompt: prompt text
        token_count: prompt token count, if known
        cost: request cost in currency units, if known
        metadata: free-form caller metadata
        timestamp: ingest time (UTC)
    """

    request_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    model: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    token_count: Optional[int] = Field(None, ge=0)
    cost: Optional[float] = Field(None, ge=0.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


class LLMResponse(WireModel):
    """
    A model response, optionally correlated with a prior request.

    request_id need not reference a retained request.
    """

    request_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    model: str = "unknown"
    response: str = Field(..., min_length=1)
    latency_ms: Optional[float] = Field(None, ge=0.0)
    completion_tokens: Optional[int] = Field(None, ge=0)
    total_tokens: Optional[int] = Field(None, ge=0)
    confidence_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    status: ResponseStatus = ResponseStatus.OK
    timestamp: datetime


class TelemetryEvent(BaseModel):
    """
    Flattened view of one request/response exchange used for classification.

    Any field may be None; rules whose input is absent are skipped.
    """

    model_config = ConfigDict(frozen=True)

    request_id: str
    user_id: Optional[str] = None
    model: Optional[str] = None
    prompt: Optional[str] = None
    response: Optional[str] = None
    token_count: Optional[int] = None
    cost: Optional[float] = None
    latency_ms: Optional[float] = None
    confidence_score: Optional[float] = None
    timestamp: datetime

    @classmethod
    def from_exchange(
        cls, response: LLMResponse, request: Optional[LLMRequest] = None
    ) -> "TelemetryEvent":
        """Join a response with its request when the request is still retained."""
        token_count = response.total_tokens
        if token_count is None and request is not None:
            token_count = request.token_count

        return cls(
            request_id=response.request_id,
            user_id=response.user_id or (request.user_id if request else None),
            model=response.model if response.model != "unknown" or request is None else request.model,
            prompt=request.prompt if request else None,
            response=response.response,
            token_count=token_count,
            cost=request.cost if request else None,
            latency_ms=response.latency_ms,
            confidence_score=response.confidence_score,
            timestamp=response.timestamp,
        )

