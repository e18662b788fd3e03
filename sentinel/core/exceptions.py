"""
Custom exceptions for the LLM Safety Sentinel.

These exceptions provide clear error semantics across the system.
Use them to distinguish between bad input, transport trouble, and failing
external collaborators. Unknown incident ids are not errors: lookups return None.
"""

from typing import Iterable


class SentinelError(Exception):
    """Base exception for the sentinel."""
    pass


class DataValidationError(SentinelError):
    """Raised when an ingest payload is missing or has malformed fields."""

    def __init__(self, message: str, fields: Iterable[str] = ()):
        self.fields = list(fields)
        super().__init__(message)

    @classmethod
    def missing(cls, fields: Iterable[str]) -> "DataValidationError":
        fields = list(fields)
        return cls(f"Missing required fields: {', '.join(fields)}", fields)


class TransportError(SentinelError):
    """Raised when publishing to or consuming from the event log fails."""
    pass


class CollaboratorError(SentinelError):
    """Raised when text generation, speech synthesis or the sink fails."""
    pass


class ConfigurationError(SentinelError):
    """Raised when configuration is invalid or missing."""
    pass
