"""
Backend service layer for incident explanation.

Wraps a text generator with prompt construction and fixed fallback answers.
The generator is an external collaborator: any failure degrades to a fallback
message instead of an error.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Mapping, Optional, Protocol, Sequence

from backend.incident.schema import Incident
from llm.config import LLMConfig
from llm.prompt import (
    build_query_prompt,
    build_remediation_prompt,
    build_root_cause_prompt,
    build_summary_prompt,
    build_voice_prompt,
)

logger = logging.getLogger("backend.assistant")

QUERY_FALLBACK = "I encountered an error analyzing the data. Please try again."
SUMMARY_FALLBACK = "Unable to summarize incidents at this time."
ROOT_CAUSE_FALLBACK = "Unable to perform analysis at this time."
REMEDIATION_FALLBACK = "Unable to suggest remediation at this time."
VOICE_FALLBACK = "I could not generate a response. Please try again."


class TextGenerator(Protocol):
    def generate(self, prompt: str) -> str:
        ...


@dataclass
class SafetyAssistantService:
    """
    Natural-language helper over incident data.

    - Builds prompts from incidents and metrics.
    - Runs the generator.
    - Returns a fixed fallback when generation fails or comes back empty.
    """

    model: Optional[TextGenerator]

    def query(self, question: str, context: Mapping[str, Any]) -> str:
        return self._run("query", build_query_prompt(question, context), QUERY_FALLBACK)

    def summarize_incidents(self, incidents: Sequence[Incident]) -> str:
        if not incidents:
            return "No incidents recorded."
        payload = [i.to_wire() for i in incidents]
        return self._run("summary", build_summary_prompt(payload), SUMMARY_FALLBACK)

    def analyze_root_cause(self, incident: Incident, related: Mapping[str, Any]) -> str:
        prompt = build_root_cause_prompt(incident.to_wire(), related)
        return self._run("root cause", prompt, ROOT_CAUSE_FALLBACK)

    def suggest_remediation(self, anomaly_type: str, severity: str, context: Mapping[str, Any]) -> str:
        prompt = build_remediation_prompt(anomaly_type, severity, context)
        return self._run("remediation", prompt, REMEDIATION_FALLBACK)

    def voice_response(self, question: str, data: Mapping[str, Any]) -> str:
        return self._run("voice", build_voice_prompt(question, data), VOICE_FALLBACK)

    def _run(self, task: str, prompt: str, fallback: str) -> str:
        if self.model is None:
            logger.warning("No text model configured; %s fallback returned", task)
            return fallback
        try:
            text = self.model.generate(prompt)
        except Exception as exc:
            logger.exception("LLM %s generation failed: %s", task, exc)
            return fallback
        text = (text or "").strip()
        return text or fallback


def create_assistant_service(model_path: Optional[str]) -> SafetyAssistantService:
    """
    Factory for the assistant with a local model.

    Without a model path the service answers with fallbacks only.
    """
    if not model_path:
        return SafetyAssistantService(model=None)

    from llm.local_model import LocalTextModel

    return SafetyAssistantService(model=LocalTextModel(config=LLMConfig(model_path=model_path)))
