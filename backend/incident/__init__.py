"""
Incident tracking: escalation decision, lifecycle, and derived metrics.
"""

from .escalation import EscalationPlan, alert_impact, alert_priority, plan_escalation
from .manager import IncidentManager
from .schema import (
    CostAnalytics,
    Incident,
    IncidentStatus,
    RequestReceipt,
    ResponseReceipt,
    SafetyMetrics,
)

__all__ = [
    "IncidentManager",
    "EscalationPlan",
    "plan_escalation",
    "alert_impact",
    "alert_priority",
    "Incident",
    "IncidentStatus",
    "SafetyMetrics",
    "CostAnalytics",
    "RequestReceipt",
    "ResponseReceipt",
]
