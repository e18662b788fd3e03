"""
LLM utilities for incident explanation.

Local inference helpers and prompt builders.
"""

from .config import LLMConfig
from .prompt import (
    build_query_prompt,
    build_remediation_prompt,
    build_root_cause_prompt,
    build_summary_prompt,
    build_voice_prompt,
)

__all__ = [
    "LLMConfig",
    "build_query_prompt",
    "build_summary_prompt",
    "build_root_cause_prompt",
    "build_remediation_prompt",
    "build_voice_prompt",
]
