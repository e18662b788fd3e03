"""
Detection rule set.

Each rule is a pure function (event, baseline, thresholds) -> Finding | None.
Rules never raise for absent optional signals; they return None instead.

All text rules are regex/keyword heuristics. False negatives are expected
and acceptable: these rules flag obvious cases, they do not guarantee that
PII, toxicity or injection attempts are caught.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Callable, Dict, List, Optional, Pattern, Tuple

from sentinel.core.config import DetectionThresholds
from sentinel.events.schema import TelemetryEvent

from .schema import BaselineSnapshot, Finding, FindingType, PIICategory, Severity

Rule = Callable[[TelemetryEvent, BaselineSnapshot, DetectionThresholds], Optional[Finding]]

PII_PATTERNS: Dict[PIICategory, Pattern[str]] = {
    PIICategory.EMAIL: re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    PIICategory.PHONE: re.compile(r"(?:\+1[-.\s]?)?\(?\b[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s]?[0-9]{4}\b"),
    PIICategory.SSN: re.compile(r"\b(?!000|666|9\d{2})\d{3}-(?!00)\d{2}-(?!0{4})\d{4}\b"),
    PIICategory.CREDIT_CARD: re.compile(r"\b(?:\d{4}[-\s]?){3}\d{4}\b"),
    PIICategory.API_KEY: re.compile(r"(?:api[_-]?key|sk[_-][a-z0-9]{20,})", re.IGNORECASE),
}


def scan_pii(text: Optional[str]) -> Dict[str, int]:
    """
    Count PII-shaped substrings per category.

    Only category names and counts are returned; matched text is discarded.
    """
    if not text:
        return {}
    counts: Dict[str, int] = {}
    for category, pattern in PII_PATTERNS.items():
        count = len(pattern.findall(text))
        if count:
            counts[category.value] = count
    return counts


@lru_cache(maxsize=8)
def _compile_phrases(phrases: Tuple[str, ...]) -> List[Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in phrases]


def _finding(
    event: TelemetryEvent,
    kind: FindingType,
    severity: Severity,
    description: str,
    **evidence: object,
) -> Finding:
    return Finding(
        type=kind,
        severity=severity,
        description=description,
        evidence=evidence,
        request_id=event.request_id,
        user_id=event.user_id,
        timestamp=event.timestamp,
    )


def _pii_description(prefix: str, counts: Dict[str, int]) -> str:
    return f"{prefix}: {', '.join(counts)}"


def detect_pii_in_request(
    event: TelemetryEvent, baseline: BaselineSnapshot, thresholds: DetectionThresholds
) -> Optional[Finding]:
    counts = scan_pii(event.prompt)
    if not counts:
        return None
    return _finding(
        event,
        FindingType.PII_IN_REQUEST,
        Severity.CRITICAL,
        _pii_description("PII detected in user input", counts),
        categories=counts,
    )


def detect_pii_in_response(
    event: TelemetryEvent, baseline: BaselineSnapshot, thresholds: DetectionThresholds
) -> Optional[Finding]:
    counts = scan_pii(event.response)
    if not counts:
        return None
    return _finding(
        event,
        FindingType.PII_LEAKAGE,
        Severity.CRITICAL,
        _pii_description("Model leaked PII", counts),
        categories=counts,
    )


def detect_toxic_content(
    event: TelemetryEvent, baseline: BaselineSnapshot, thresholds: DetectionThresholds
) -> Optional[Finding]:
    if not event.response:
        return None
    text = event.response.lower()
    matched = [kw for kw in thresholds.toxic_keywords if kw.lower() in text]
    if not matched:
        return None
    return _finding(
        event,
        FindingType.TOXIC_CONTENT,
        Severity.HIGH,
        "Model generated toxic/harmful content",
        keywords=matched,
    )


def detect_prompt_injection(
    event: TelemetryEvent, baseline: BaselineSnapshot, thresholds: DetectionThresholds
) -> Optional[Finding]:
    if not event.prompt:
        return None
    patterns = _compile_phrases(tuple(thresholds.injection_phrases))
    matched = [p.pattern for p in patterns if p.search(event.prompt)]
    if not matched:
        return None
    return _finding(
        event,
        FindingType.PROMPT_INJECTION,
        Severity.CRITICAL,
        "Possible prompt injection attack detected in user input",
        patterns=matched,
    )


def detect_token_anomaly(
    event: TelemetryEvent, baseline: BaselineSnapshot, thresholds: DetectionThresholds
) -> Optional[Finding]:
    avg = baseline.avg_token_count
    if event.token_count is None or not avg:
        return None

    increase = (event.token_count - avg) / avg
    if increase > thresholds.token_increase_high:
        severity = Severity.HIGH
        reason = f"Token usage >{thresholds.token_increase_high:.0%} above average"
    elif increase > thresholds.token_increase_medium:
        severity = Severity.MEDIUM
        reason = f"Token usage >{thresholds.token_increase_medium:.0%} above average"
    else:
        return None

    return _finding(
        event,
        FindingType.TOKEN_ANOMALY,
        severity,
        reason,
        tokens=event.token_count,
        avg_tokens=avg,
        increase=round(increase, 4),
    )


def detect_cost_anomaly(
    event: TelemetryEvent, baseline: BaselineSnapshot, thresholds: DetectionThresholds
) -> Optional[Finding]:
    if event.cost is None:
        return None

    cost = event.cost
    avg = baseline.avg_cost
    if cost > thresholds.cost_ceiling:
        reason = f"Cost (${cost:.2f}) exceeds threshold (${thresholds.cost_ceiling:.2f})"
    elif avg and (cost - avg) / avg > thresholds.cost_increase:
        reason = f"Cost spike: >{thresholds.cost_increase:.0%} increase from baseline"
    else:
        return None

    return _finding(
        event,
        FindingType.COST_ANOMALY,
        Severity.HIGH,
        reason,
        cost=cost,
        avg_cost=avg,
    )


def detect_latency_anomaly(
    event: TelemetryEvent, baseline: BaselineSnapshot, thresholds: DetectionThresholds
) -> Optional[Finding]:
    if event.latency_ms is None:
        return None

    latency = event.latency_ms
    avg = baseline.avg_latency_ms
    ratio = latency / avg if avg else None

    if latency > thresholds.latency_timeout_ms:
        severity = Severity.HIGH
        reason = f"Request timeout (>{thresholds.latency_timeout_ms / 1000:.0f}s)"
    elif ratio is not None and ratio > thresholds.latency_ratio_high:
        severity = Severity.HIGH
        reason = f"Latency {ratio:.1f}x above average ({latency:.0f}ms vs {avg:.0f}ms)"
    elif ratio is not None and ratio > thresholds.latency_ratio_medium:
        severity = Severity.MEDIUM
        reason = f"Latency elevated: {latency:.0f}ms vs {avg:.0f}ms avg"
    else:
        return None

    return _finding(
        event,
        FindingType.PERFORMANCE_DEGRADATION,
        severity,
        reason,
        latency_ms=latency,
        avg_latency_ms=avg,
    )


def detect_hallucination(
    event: TelemetryEvent, baseline: BaselineSnapshot, thresholds: DetectionThresholds
) -> Optional[Finding]:
    if not event.response:
        return None

    score = event.confidence_score
    if score is not None and score < thresholds.confidence_floor:
        return _finding(
            event,
            FindingType.HALLUCINATION,
            Severity.HIGH,
            f"Very low confidence score: {score}",
            confidence_score=score,
        )

    text = event.response.lower()
    uncertain = any(p in text for p in thresholds.uncertainty_phrases)
    assertive = any(p in text for p in thresholds.assertive_phrases)
    if uncertain and assertive:
        return _finding(
            event,
            FindingType.HALLUCINATION,
            Severity.HIGH,
            "Contradictory statements detected in response",
            confidence_score=score,
        )
    return None


def detect_error_spike(
    event: TelemetryEvent, baseline: BaselineSnapshot, thresholds: DetectionThresholds
) -> Optional[Finding]:
    if baseline.error_count <= thresholds.error_count_limit:
        return None
    return _finding(
        event,
        FindingType.ERROR_SPIKE,
        Severity.HIGH,
        f"High error rate: {baseline.error_count} errors in the current window",
        error_count=baseline.error_count,
    )


# Evaluation order is part of the classifier contract.
RULES: Tuple[Rule, ...] = (
    detect_pii_in_request,
    detect_pii_in_response,
    detect_toxic_content,
    detect_prompt_injection,
    detect_token_anomaly,
    detect_cost_anomaly,
    detect_latency_anomaly,
    detect_hallucination,
    detect_error_spike,
)
