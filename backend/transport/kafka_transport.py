"""
Kafka transport.

Thin wrapper over kafka-python. Connection parameters come from
TransportConfig; SASL_SSL/PLAIN is used whenever credentials are set.
"""

from __future__ import annotations

from datetime import datetime
import json
import logging
from typing import Any, Dict, Optional

from kafka import KafkaProducer
from kafka.admin import KafkaAdminClient, NewTopic
from kafka.errors import KafkaError, TopicAlreadyExistsError

from sentinel.core.config import TransportConfig
from sentinel.core.exceptions import ConfigurationError, TransportError

logger = logging.getLogger("backend.transport.kafka")


def connection_options(settings: TransportConfig) -> Dict[str, Any]:
    """Shared client options for producer, consumer and admin clients."""
    if not settings.bootstrap_servers:
        raise ConfigurationError("transport.bootstrap_servers is not set")

    options: Dict[str, Any] = {
        "bootstrap_servers": settings.bootstrap_servers.split(","),
    }
    if settings.api_key and settings.api_secret:
        options.update(
            security_protocol="SASL_SSL",
            sasl_mechanism="PLAIN",
            sasl_plain_username=settings.api_key,
            sasl_plain_password=settings.api_secret,
        )
    return options


def encode_json(value: Dict[str, Any]) -> bytes:
    return json.dumps(value, default=str).encode("utf-8")


class KafkaTransport:
    """
    Keyed JSON publisher.

    send() is asynchronous: delivery failures surface through the errback
    and are logged. Synchronous errors (buffer full, serialization) are
    raised as TransportError for the publisher to report.
    """

    def __init__(self, settings: TransportConfig, producer: Optional[KafkaProducer] = None) -> None:
        self.settings = settings
        self._producer = producer

    def connect(self) -> None:
        if self._producer is not None:
            return
        try:
            self._producer = KafkaProducer(
                client_id=self.settings.producer_client_id,
                key_serializer=lambda k: k.encode("utf-8"),
                value_serializer=encode_json,
                **connection_options(self.settings),
            )
        except KafkaError as exc:
            raise TransportError(f"Kafka producer connection failed: {exc}") from exc
        logger.info("Kafka producer connected")

    def ensure_topics(self) -> None:
        """Create the four topics; existing topics are left alone."""
        admin = KafkaAdminClient(
            client_id=f"{self.settings.producer_client_id}-admin",
            **connection_options(self.settings),
        )
        try:
            for name in self.settings.topics.all():
                topic = NewTopic(
                    name=name,
                    num_partitions=self.settings.num_partitions,
                    replication_factor=self.settings.replication_factor,
                )
                try:
                    admin.create_topics([topic], validate_only=False)
                except TopicAlreadyExistsError:
                    logger.debug("Topic %s already exists", name)
        finally:
            admin.close()
        logger.info("Topics ready: %s", ", ".join(self.settings.topics.all()))

    def publish(self, topic: str, key: str, value: Dict[str, Any], timestamp: datetime) -> None:
        if self._producer is None:
            raise TransportError("Kafka producer is not connected")
        try:
            future = self._producer.send(
                topic,
                key=key,
                value=value,
                timestamp_ms=int(timestamp.timestamp() * 1000),
            )
        except KafkaError as exc:
            raise TransportError(str(exc)) from exc
        future.add_errback(
            lambda exc: logger.error("Delivery to %s failed (key=%s): %s", topic, key, exc)
        )

    def close(self) -> None:
        if self._producer is None:
            return
        try:
            self._producer.flush()
            self._producer.close()
            logger.info("Kafka producer disconnected")
        except KafkaError as exc:
            logger.error("Error disconnecting producer: %s", exc)
        finally:
            self._producer = None
