"""
Core module: Configuration, logging, and exception handling.
"""

from .config import Config, config
from .exceptions import (
    CollaboratorError,
    ConfigurationError,
    DataValidationError,
    SentinelError,
    TransportError,
)

__all__ = [
    "Config",
    "config",
    "SentinelError",
    "DataValidationError",
    "TransportError",
    "CollaboratorError",
    "ConfigurationError",
]
