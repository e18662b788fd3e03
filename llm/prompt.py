"""
Prompt construction for the safety assistant.

Every prompt embeds its context as sorted JSON so the same inputs always
produce the same prompt text.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

SYSTEM_PREAMBLE = "You are an AI safety expert analyzing LLM monitoring data."


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, sort_keys=True, default=str)


def build_query_prompt(question: str, context: Mapping[str, Any]) -> str:
    """Free-form operator question answered from current metrics."""
    return (
        f"{SYSTEM_PREAMBLE}\n"
        f'User asked: "{question}"\n\n'
        f"Current monitoring context:\n{_dump(context)}\n\n"
        "Provide a concise, actionable answer. If there are safety issues, "
        "explain the severity and recommended actions.\n"
        "ANSWER:"
    )


def build_summary_prompt(incidents: Sequence[Mapping[str, Any]]) -> str:
    return (
        "Summarize these LLM safety incidents concisely for an engineer:\n\n"
        f"{_dump(list(incidents))}\n\n"
        "Provide a 2-3 sentence summary of key issues and recommended actions.\n"
        "SUMMARY:"
    )


def build_root_cause_prompt(incident: Mapping[str, Any], related: Mapping[str, Any]) -> str:
    return (
        "As an AI safety expert, analyze the root cause of this incident:\n\n"
        f"Incident: {_dump(incident)}\n\n"
        f"Related Metrics:\n{_dump(related)}\n\n"
        "Provide:\n"
        "1. Root cause hypothesis\n"
        "2. Contributing factors\n"
        "3. Recommended remediation steps\n"
        "4. Prevention measures\n"
        "ANALYSIS:"
    )


def build_remediation_prompt(anomaly_type: str, severity: str, context: Mapping[str, Any]) -> str:
    return (
        "As an LLM safety expert, suggest immediate remediation steps for this issue:\n\n"
        f"Type: {anomaly_type}\n"
        f"Severity: {severity}\n"
        f"Context: {_dump(context)}\n\n"
        "Provide:\n"
        "1. Immediate actions (next 5 minutes)\n"
        "2. Short-term fixes (next 1 hour)\n"
        "3. Long-term improvements (this week)\n"
        "4. Monitoring to add\n"
        "STEPS:"
    )


def build_voice_prompt(question: str, data: Mapping[str, Any]) -> str:
    return (
        "Generate a clear, spoken-friendly response to this engineer query:\n\n"
        f'Query: "{question}"\n\n'
        f"Data: {_dump(data)}\n\n"
        "Keep it conversational, concise, and actionable. Suitable for text-to-speech.\n"
        "RESPONSE:"
    )
