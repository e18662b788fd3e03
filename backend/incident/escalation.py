"""
Escalation decision.

Turns classifier findings into outbound events and new incidents without
touching any state or transport. The manager applies the resulting plan.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Sequence

from backend.transport.schema import EventKind, OutboundEvent
from sentinel.detection.schema import Finding, FindingType, Severity

from .schema import Incident

ALERT_IMPACTS: Dict[FindingType, str] = {
    FindingType.PII_LEAKAGE: "Sensitive user data may have been exposed in model response",
    FindingType.PROMPT_INJECTION: "Potential security breach attempt detected",
    FindingType.TOXIC_CONTENT: "Model generated harmful or offensive content",
    FindingType.COST_ANOMALY: "Unexpected spike in API costs detected",
    FindingType.PERFORMANCE_DEGRADATION: "Service response times significantly degraded",
    FindingType.HALLUCINATION: "Model generated potentially false or misleading information",
    FindingType.ERROR_SPIKE: "Unusual number of errors detected",
    FindingType.TOKEN_ANOMALY: "Token usage abnormally high",
}
DEFAULT_IMPACT = "Anomaly detected in LLM behavior"


def alert_impact(kind: FindingType) -> str:
    return ALERT_IMPACTS.get(kind, DEFAULT_IMPACT)


def alert_priority(severity: Severity) -> str:
    return "urgent" if severity == Severity.CRITICAL else "high"


@dataclass
class EscalationPlan:
    """Outbound events plus incidents to retain, in finding order."""

    outbound: List[OutboundEvent] = field(default_factory=list)
    incidents: List[Incident] = field(default_factory=list)


def anomaly_event(finding: Finding) -> OutboundEvent:
    return OutboundEvent(
        kind=EventKind.ANOMALY,
        key=finding.type.value,
        payload={
            "type": finding.type.value,
            "severity": finding.severity.value,
            "description": finding.description,
            "evidence": finding.evidence,
            "requestId": finding.request_id,
            "userId": finding.user_id,
            "timestamp": finding.timestamp.isoformat(),
        },
        timestamp=finding.timestamp,
    )


def alert_event(finding: Finding, incident: Incident) -> OutboundEvent:
    return OutboundEvent(
        kind=EventKind.ALERT,
        key=finding.type.value,
        payload={
            "alertType": finding.type.value,
            "message": finding.description,
            "severity": finding.severity.value,
            "requestId": finding.request_id,
            "userId": finding.user_id,
            "incidentId": incident.id,
            "impactDescription": alert_impact(finding.type),
            "priority": alert_priority(finding.severity),
            "timestamp": incident.timestamp.isoformat(),
        },
        timestamp=incident.timestamp,
    )


def plan_escalation(findings: Sequence[Finding], now: datetime) -> EscalationPlan:
    """
    Decide what each finding turns into.

    Every finding is published as an anomaly event. A finding escalates iff
    its severity is high or critical: it additionally produces an alert
    event and a new open incident.
    """
    plan = EscalationPlan()
    for finding in findings:
        plan.outbound.append(anomaly_event(finding))
        if not finding.severity.escalates:
            continue
        incident = Incident(
            type=finding.type,
            severity=finding.severity,
            request_id=finding.request_id,
            user_id=finding.user_id,
            description=finding.description,
            timestamp=now,
        )
        plan.incidents.append(incident)
        plan.outbound.append(alert_event(finding, incident))
    return plan
