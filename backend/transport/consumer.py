"""
Event consumer and sink forwarder.

Replays all four topics from the earliest offset on a cold start and turns
each record into metrics/events for the observability sink. Records are
processed independently; a failing record is logged and skipped.
"""

from __future__ import annotations

import argparse
import json
import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from dotenv import load_dotenv
from kafka import KafkaConsumer
from kafka.errors import KafkaError

from sentinel.core.config import TopicNames, TransportConfig, config
from sentinel.core.exceptions import TransportError
from sentinel.core.logging_config import setup_logging

from .kafka_transport import connection_options
from .schema import ConsumedRecord
from .sink import DatadogSink, ObservabilitySink

logger = logging.getLogger("backend.transport.consumer")

LOW_CONFIDENCE = 0.5
PROMPT_PREVIEW_CHARS = 100


class SinkForwarder:
    """
    Derives sink metrics/events from consumed records.

    Topic handling:
    - requests: request_count, token_usage, request_cost
    - responses: response_latency_ms, completion_tokens, low-confidence event
    - anomalies: anomaly_detected metric + security event
    - alerts: critical event + critical_alert_count metric
    """

    def __init__(self, sink: ObservabilitySink, topics: Optional[TopicNames] = None) -> None:
        self.sink = sink
        self.topics = topics or config.transport.topics
        self._handlers: Dict[str, Callable[[Mapping[str, Any]], None]] = {
            self.topics.requests: self._on_request,
            self.topics.responses: self._on_response,
            self.topics.anomalies: self._on_anomaly,
            self.topics.alerts: self._on_alert,
        }

    def handle(self, topic: str, partition: int, payload: Mapping[str, Any]) -> bool:
        """Process one record. Returns False when it was skipped or failed."""
        logger.debug("Message from %s [%s]", topic, partition)
        handler = self._handlers.get(topic)
        if handler is None:
            logger.warning("Unknown topic: %s", topic)
            return False
        try:
            handler(payload)
        except Exception:
            logger.exception("Error processing record from %s [%s]", topic, partition)
            return False
        return True

    def handle_all(self, records: Iterable[ConsumedRecord]) -> int:
        return sum(1 for r in records if self.handle(r.topic, r.partition, r.payload))

    def _on_request(self, data: Mapping[str, Any]) -> None:
        model = data.get("model")
        user = data.get("userId")
        self.sink.record_metric("request_count", 1, {"user_id": user, "model": model})

        if data.get("tokenCount"):
            self.sink.record_metric("token_usage", data["tokenCount"], {"model": model})
        if data.get("cost"):
            self.sink.record_metric("request_cost", data["cost"], {"model": model})

        metadata = data.get("metadata") or {}
        if metadata.get("priority") == "high":
            prompt = (data.get("prompt") or "")[:PROMPT_PREVIEW_CHARS]
            self.sink.record_event(
                "High Priority LLM Request",
                f"Request from {user}: {prompt}...",
                [f"user:{user}", f"model:{model}"],
                priority="normal",
            )

    def _on_response(self, data: Mapping[str, Any]) -> None:
        model = data.get("model")
        if data.get("latencyMs") is not None:
            self.sink.record_metric(
                "response_latency_ms", data["latencyMs"], {"model": model, "status": data.get("status")}
            )
        if data.get("completionTokens"):
            self.sink.record_metric("completion_tokens", data["completionTokens"], {"model": model})

        confidence = data.get("confidenceScore")
        if confidence is not None and confidence < LOW_CONFIDENCE:
            self.sink.record_event(
                "Low Confidence Response Detected",
                f"Response confidence: {confidence}. Possible hallucination risk.",
                ["anomaly:confidence", f"model:{model}"],
                severity="warning",
                priority="normal",
            )

    def _on_anomaly(self, data: Mapping[str, Any]) -> None:
        kind = data.get("type")
        severity = data.get("severity")
        critical = severity == "critical"
        self.sink.record_metric("anomaly_detected", 1, {"anomaly_type": kind, "severity": severity})
        self.sink.record_event(
            f"Security Alert: {kind}",
            data.get("description") or f"Anomaly detected: {kind}",
            [f"anomaly:{kind}", f"severity:{severity}", f"user:{data.get('userId')}"],
            severity="error" if critical else "warning",
            priority="urgent" if critical else "normal",
        )

    def _on_alert(self, data: Mapping[str, Any]) -> None:
        kind = data.get("alertType")
        self.sink.record_event(
            f"CRITICAL: {kind}",
            f"{data.get('message')}. Impact: {data.get('impactDescription')}",
            [f"alert:{kind}", f"priority:{data.get('priority')}"],
            severity="error",
            priority="urgent",
        )
        self.sink.record_metric("critical_alert_count", 1, {"alert_type": kind})


def decode_record(raw: Optional[bytes]) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    try:
        value = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.error("Undecodable record skipped: %s", exc)
        return None
    return value if isinstance(value, dict) else None


class EventConsumer:
    """
    Kafka subscription feeding a SinkForwarder.

    Uses auto_offset_reset="earliest" so a new consumer group replays the
    full history.
    """

    def __init__(
        self,
        settings: TransportConfig,
        forwarder: SinkForwarder,
        consumer: Optional[KafkaConsumer] = None,
    ) -> None:
        self.settings = settings
        self.forwarder = forwarder
        self._consumer = consumer

    def connect(self) -> None:
        if self._consumer is not None:
            return
        try:
            self._consumer = KafkaConsumer(
                *self.settings.topics.all(),
                client_id=self.settings.consumer_client_id,
                group_id=self.settings.consumer_group,
                auto_offset_reset="earliest",
                **connection_options(self.settings),
            )
        except KafkaError as exc:
            raise TransportError(f"Kafka consumer connection failed: {exc}") from exc
        logger.info("Kafka consumer subscribed to %s", ", ".join(self.settings.topics.all()))

    def run(self, max_records: Optional[int] = None) -> int:
        """Consume until stopped (or max_records). Returns records seen."""
        self.connect()
        seen = 0
        for message in self._consumer:
            seen += 1
            payload = decode_record(message.value)
            if payload is not None:
                self.forwarder.handle(message.topic, message.partition, payload)
            if max_records is not None and seen >= max_records:
                break
        return seen

    def close(self) -> None:
        if self._consumer is not None:
            self._consumer.close()
            self._consumer = None
            logger.info("Consumer disconnected")


def main() -> None:
    parser = argparse.ArgumentParser(description="Forward LLM telemetry topics to Datadog")
    parser.add_argument("--max-records", type=int, default=None)
    args = parser.parse_args()

    load_dotenv()
    setup_logging("backend")
    sink = DatadogSink(config.sink)
    consumer = EventConsumer(config.transport, SinkForwarder(sink))
    try:
        consumer.run(max_records=args.max_records)
    except KeyboardInterrupt:
        logger.info("Shutting down consumer")
    finally:
        consumer.close()
        sink.close()


if __name__ == "__main__":
    main()
