"""
Anomaly classifier.

Runs the detection rule set over one telemetry event and its baseline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import List, Optional, Sequence

from sentinel.core.config import DetectionThresholds, config
from sentinel.events.schema import TelemetryEvent

from .rules import RULES, Rule
from .schema import BaselineSnapshot, Finding

logger = logging.getLogger("sentinel.detection")


@dataclass
class AnomalyClassifier:
    """
    Deterministic, stateless classifier.

    Notes:
    - Findings are returned in rule evaluation order.
    - The same event and baseline always yield the same findings.
    - Safe to share across threads: no state beyond the rule constants.
    """

    thresholds: DetectionThresholds = field(default_factory=lambda: config.thresholds)
    rules: Sequence[Rule] = RULES

    def classify(
        self, event: TelemetryEvent, baseline: Optional[BaselineSnapshot] = None
    ) -> List[Finding]:
        baseline = baseline or BaselineSnapshot()
        findings: List[Finding] = []

        for rule in self.rules:
            finding = rule(event, baseline, self.thresholds)
            if finding is not None:
                findings.append(finding)

        if findings:
            logger.debug(
                "request %s: %d finding(s): %s",
                event.request_id,
                len(findings),
                ", ".join(f.type.value for f in findings),
            )
        return findings
