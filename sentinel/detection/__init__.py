"""
Detection module: rule-based anomaly classification for LLM traffic.

Implements the rule set, rolling baselines, and the classifier.
"""

from .baselines import BaselineTracker, RollingMean
from .classifier import AnomalyClassifier
from .rules import RULES, scan_pii
from .schema import BaselineSnapshot, Finding, FindingType, PIICategory, Severity

__all__ = [
	"AnomalyClassifier",
	"BaselineTracker",
	"RollingMean",
	"BaselineSnapshot",
	"Finding",
	"FindingType",
	"PIICategory",
	"Severity",
	"RULES",
	"scan_pii",
]
