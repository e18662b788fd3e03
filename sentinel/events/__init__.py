"""
Events module: request/response telemetry schema.
"""

from .schema import LLMRequest, LLMResponse, ResponseStatus, TelemetryEvent, WireModel

__all__ = [
    "LLMRequest",
    "LLMResponse",
    "ResponseStatus",
    "TelemetryEvent",
    "WireModel",
]
