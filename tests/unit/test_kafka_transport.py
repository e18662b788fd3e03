"""
Unit tests for the Kafka transport and consumer loop.

kafka-python clients are replaced with in-process fakes; no broker needed.
"""

from collections import namedtuple
from datetime import datetime, timezone

import pytest
from kafka.errors import KafkaError

from backend.transport import EventKind, EventPublisher, OutboundEvent
from backend.transport.consumer import EventConsumer, SinkForwarder, decode_record
from backend.transport.kafka_transport import KafkaTransport, connection_options, encode_json
from sentinel.core.config import TransportConfig
from sentinel.core.exceptions import ConfigurationError, TransportError

T0 = datetime(2025, 2, 7, 12, 0, tzinfo=timezone.utc)

Message = namedtuple("Message", ["topic", "partition", "value"])


class _FakeFuture:
    def __init__(self):
        self.errbacks = []

    def add_errback(self, fn):
        self.errbacks.append(fn)
        return self


class _FakeProducer:
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail
        self.flushed = False
        self.closed = False

    def send(self, topic, key=None, value=None, timestamp_ms=None):
        if self.fail:
            raise KafkaError("buffer exhausted")
        self.sent.append((topic, key, value, timestamp_ms))
        return _FakeFuture()

    def flush(self):
        self.flushed = True

    def close(self):
        self.closed = True


class _FakeConsumer:
    def __init__(self, messages):
        self._messages = messages
        self.closed = False

    def __iter__(self):
        return iter(self._messages)

    def close(self):
        self.closed = True


class _RecordingForwarder(SinkForwarder):
    def __init__(self):
        self.handled = []

    def handle(self, topic, partition, payload):
        self.handled.append((topic, partition, payload))
        return True


def test_connection_options_require_bootstrap_servers():
    with pytest.raises(ConfigurationError):
        connection_options(TransportConfig())


def test_connection_options_plaintext_and_sasl():
    plain = connection_options(TransportConfig(bootstrap_servers="a:9092,b:9092"))
    assert plain == {"bootstrap_servers": ["a:9092", "b:9092"]}

    secured = connection_options(
        TransportConfig(bootstrap_servers="a:9092", api_key="key", api_secret="secret")
    )
    assert secured["security_protocol"] == "SASL_SSL"
    assert secured["sasl_mechanism"] == "PLAIN"
    assert secured["sasl_plain_username"] == "key"


def test_publish_sends_keyed_record_with_timestamp():
    producer = _FakeProducer()
    transport = KafkaTransport(TransportConfig(bootstrap_servers="a:9092"), producer=producer)

    transport.publish("llm-alerts", "HALLUCINATION", {"x": 1}, T0)

    topic, key, value, timestamp_ms = producer.sent[0]
    assert (topic, key, value) == ("llm-alerts", "HALLUCINATION", {"x": 1})
    assert timestamp_ms == int(T0.timestamp() * 1000)


def test_publish_without_producer_raises():
    transport = KafkaTransport(TransportConfig(bootstrap_servers="a:9092"))
    with pytest.raises(TransportError):
        transport.publish("t", "k", {}, T0)


def test_kafka_errors_become_publish_failures():
    transport = KafkaTransport(TransportConfig(bootstrap_servers="a:9092"), producer=_FakeProducer(fail=True))
    publisher = EventPublisher(transport)

    failure = publisher.publish(
        OutboundEvent(kind=EventKind.ALERT, key="X", payload={}, timestamp=T0)
    )
    assert failure is not None
    assert failure.topic == "llm-alerts"


def test_close_flushes_producer():
    producer = _FakeProducer()
    transport = KafkaTransport(TransportConfig(bootstrap_servers="a:9092"), producer=producer)
    transport.close()

    assert producer.flushed and producer.closed
    transport.close()


def test_encode_and_decode_json():
    raw = encode_json({"when": T0, "n": 1})
    assert decode_record(raw) == {"when": str(T0), "n": 1}
    assert decode_record(b"\xff not json") is None
    assert decode_record(b"[1, 2]") is None
    assert decode_record(None) is None


def test_consumer_forwards_decoded_records():
    messages = [
        Message("llm-requests", 0, b'{"model": "m"}'),
        Message("llm-alerts", 1, b"garbage"),
        Message("llm-anomalies", 2, b'{"type": "HALLUCINATION"}'),
    ]
    fake = _FakeConsumer(messages)
    forwarder = _RecordingForwarder()
    consumer = EventConsumer(TransportConfig(bootstrap_servers="a:9092"), forwarder, consumer=fake)

    assert consumer.run() == 3
    assert [h[0] for h in forwarder.handled] == ["llm-requests", "llm-anomalies"]

    consumer.close()
    assert fake.closed


def test_consumer_stops_at_max_records():
    messages = [Message("llm-requests", 0, b"{}")] * 5
    forwarder = _RecordingForwarder()
    consumer = EventConsumer(
        TransportConfig(bootstrap_servers="a:9092"), forwarder, consumer=_FakeConsumer(messages)
    )
    assert consumer.run(max_records=2) == 2
    assert len(forwarder.handled) == 2
