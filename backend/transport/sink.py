"""
Observability sink.

Forwards metrics and events to the Datadog HTTP API. Best effort: every
failure is logged and swallowed so the consume loop keeps going.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import httpx

from sentinel.core.config import SinkConfig

logger = logging.getLogger("backend.transport.sink")


class ObservabilitySink(Protocol):
    def record_metric(self, name: str, value: float, tags: Mapping[str, Any]) -> None:
        ...

    def record_event(
        self,
        title: str,
        text: str,
        tags: Sequence[str],
        severity: str = "info",
        priority: str = "normal",
    ) -> None:
        ...


def format_tags(tags: Mapping[str, Any]) -> List[str]:
    return [f"{k}:{v}" for k, v in tags.items() if v is not None]


class DatadogSink:
    """
    Datadog series/events client.

    Metric names are prefixed with SinkConfig.metric_prefix.
    """

    def __init__(self, settings: SinkConfig, client: Optional[httpx.Client] = None) -> None:
        self.settings = settings
        self._client = client or httpx.Client(
            base_url=f"https://api.{settings.site}",
            headers={
                "DD-API-KEY": settings.api_key or "",
                "DD-APPLICATION-KEY": settings.app_key or "",
            },
            timeout=settings.timeout_seconds,
        )

    def record_metric(self, name: str, value: float, tags: Mapping[str, Any]) -> None:
        metric = f"{self.settings.metric_prefix}.{name}"
        payload = {
            "series": [
                {
                    "metric": metric,
                    "points": [[int(datetime.now(timezone.utc).timestamp()), value]],
                    "type": "gauge",
                    "tags": format_tags(tags),
                }
            ]
        }
        self._post("/api/v1/series", payload, f"metric {metric}")

    def record_event(
        self,
        title: str,
        text: str,
        tags: Sequence[str],
        severity: str = "info",
        priority: str = "normal",
    ) -> None:
        payload: Dict[str, Any] = {
            "title": title,
            "text": text,
            "tags": list(tags),
            "alert_type": severity,
            "priority": priority,
        }
        self._post("/api/v1/events", payload, f"event '{title}'")

    def _post(self, path: str, payload: Dict[str, Any], what: str) -> None:
        try:
            response = self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Failed to send %s: %s", what, exc)

    def close(self) -> None:
        self._client.close()
