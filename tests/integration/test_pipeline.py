"""
Integration tests for the full telemetry pipeline.

Exercises ingest -> classification -> escalation -> publish -> sink
forwarding, and the HTTP surface in front of it.
"""

from contextlib import contextmanager
import threading

import httpx
import pytest

from backend.assistant_service import QUERY_FALLBACK, SafetyAssistantService
from backend.main import Services, create_server
from backend.transport.consumer import SinkForwarder
from backend.transport.schema import ConsumedRecord
from backend.voice import VoiceSynthesizer
from sentinel.core.config import VoiceConfig
from sentinel.detection import FindingType


class _RecordingSink:
    def __init__(self):
        self.metrics = []
        self.events = []

    def record_metric(self, name, value, tags):
        self.metrics.append(name)

    def record_event(self, title, text, tags, severity="info", priority="normal"):
        self.events.append(title)


@contextmanager
def _serve(services):
    server = create_server("127.0.0.1", 0, services)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    host, port = server.server_address[:2]
    try:
        with httpx.Client(base_url=f"http://{host}:{port}", timeout=5.0) as client:
            yield client
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture
def api(manager, transport):
    services = Services(
        manager=manager,
        assistant=SafetyAssistantService(model=None),
        transport=transport,
    )
    with _serve(services) as client:
        yield client


@pytest.mark.integration
class TestManagerPipeline:
    """End-to-end flow through the manager and the forwarder."""

    def test_clean_exchange(self, manager, transport, sample_request, sample_response):
        request = manager.record_request(sample_request)
        receipt = manager.record_response({"requestId": request.request_id, **sample_response})

        assert receipt.anomaly_count == 0
        assert manager.get_recent_incidents() == []
        assert manager.get_cost_analytics().total_cost == 1
        assert {r.topic for r in transport.records} == {"llm-requests", "llm-responses"}

    def test_published_records_forward_to_sink(self, manager, transport, test_config):
        request = manager.record_request(
            {"userId": "u1", "model": "gpt-x", "prompt": "my ssn is 123-45-6789", "cost": 0.2}
        )
        manager.record_response(
            {"requestId": request.request_id, "response": "noted", "confidenceScore": 0.2, "latencyMs": 80}
        )

        sink = _RecordingSink()
        forwarder = SinkForwarder(sink, test_config.transport.topics)
        records = [ConsumedRecord(topic=r.topic, payload=r.value) for r in transport.records]
        assert forwarder.handle_all(records) == len(records)

        assert "Security Alert: PII_IN_REQUEST" in sink.events
        assert "CRITICAL: HALLUCINATION" in sink.events
        assert sink.metrics.count("critical_alert_count") == 2
        assert "Low Confidence Response Detected" in sink.events

    def test_latency_degradation_after_warm_baseline(self, manager):
        for _ in range(99):
            manager.record_response({"requestId": "r", "response": "ok", "latencyMs": 1000})

        receipt = manager.record_response({"requestId": "r", "response": "ok", "latencyMs": 3500})
        assert receipt.anomaly_count == 1
        incident = manager.get_incident_details(receipt.incident_ids[0])
        assert incident.type == FindingType.PERFORMANCE_DEGRADATION


@pytest.mark.integration
class TestHttpSurface:
    """HTTP routes over a live server bound to an ephemeral port."""

    def test_health(self, api):
        response = api.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_ingest_and_incident_lifecycle(self, api):
        request = api.post("/api/llm/request", json={"userId": "u1", "model": "gpt-x", "prompt": "hello"})
        assert request.status_code == 200
        request_id = request.json()["requestId"]

        response = api.post(
            "/api/llm/response",
            json={"requestId": request_id, "response": "Paris", "confidenceScore": 0.1},
        )
        body = response.json()
        assert body["anomalyCount"] == 1
        incident_id = body["incidentIds"][0]

        listing = api.get("/api/incidents", params={"count": 5}).json()
        assert listing["count"] == 1
        assert listing["incidents"][0]["id"] == incident_id

        detail = api.get(f"/api/incidents/{incident_id}").json()
        assert detail["status"] == "open"
        assert detail["requestId"] == request_id

        closed = api.post(f"/api/incidents/{incident_id}/close", json={"resolution": "false positive"})
        assert closed.status_code == 200
        assert closed.json()["incident"]["status"] == "closed"

        metrics = api.get("/api/metrics/safety").json()
        assert metrics["totalIncidents"] == 1
        assert metrics["openIncidents"] == 0

    def test_validation_errors_are_400(self, api):
        response = api.post("/api/llm/request", json={"userId": "u1"})
        assert response.status_code == 400
        assert response.json()["fields"] == ["prompt", "model"]

        assert api.post("/api/llm/response", json={}).status_code == 400
        assert api.post("/api/voice/query", json={}).status_code == 400

    def test_unknown_ids_are_404(self, api):
        assert api.get("/api/incidents/nope").status_code == 404
        assert api.post("/api/incidents/nope/close", json={}).status_code == 404
        assert api.post("/api/analysis/root-cause", json={"incidentId": "nope"}).status_code == 404
        assert api.get("/api/unknown").status_code == 404

    def test_cost_metrics(self, api):
        api.post("/api/llm/request", json={"userId": "u1", "model": "gpt-x", "prompt": "a", "cost": 1.25})
        body = api.get("/api/metrics/cost").json()
        assert body["totalCost"] == 1.25
        assert body["costByUser"] == {"u1": 1.25}

    def test_assistant_routes_degrade_to_fallbacks(self, api):
        answer = api.post("/api/voice/query", json={"query": "Any incidents?"}).json()
        assert answer["response"] == QUERY_FALLBACK

        summary = api.post("/api/analysis/summarize", json={}).json()
        assert summary["incidentCount"] == 0
        assert summary["summary"] == "No incidents recorded."

    def test_voice_routes_without_synthesizer(self, api):
        assert api.get("/api/voice/usage").status_code == 503
        assert api.post("/api/voice/speak", json={"text": "hi"}).status_code == 503

    def test_unexpected_post_error_is_500(self, api, manager, monkeypatch):
        def broken(payload):
            raise RuntimeError("disk full")

        monkeypatch.setattr(manager, "record_request", broken)
        response = api.post("/api/llm/request", json={"model": "gpt-x", "prompt": "hi"})

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
        assert api.get("/health").status_code == 200

    def test_unexpected_get_error_is_500(self, api, manager, monkeypatch):
        def broken():
            raise KeyError("metrics")

        monkeypatch.setattr(manager, "get_safety_metrics", broken)
        response = api.get("/api/metrics/safety")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    def test_voice_listing(self, manager):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/voices"
            return httpx.Response(200, json={"voices": [{"voice_id": "v1", "name": "Rachel"}]})

        client = httpx.Client(base_url="https://voice.test", transport=httpx.MockTransport(handler))
        services = Services(
            manager=manager,
            assistant=SafetyAssistantService(model=None),
            voice=VoiceSynthesizer(VoiceConfig(voice_id="v1"), client=client),
        )
        with _serve(services) as api:
            response = api.get("/api/voice/voices")

        assert response.status_code == 200
        assert response.json()["voices"][0]["name"] == "Rachel"

    def test_voice_listing_upstream_failure_is_502(self, manager):
        client = httpx.Client(
            base_url="https://voice.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        services = Services(
            manager=manager,
            assistant=SafetyAssistantService(model=None),
            voice=VoiceSynthesizer(VoiceConfig(), client=client),
        )
        with _serve(services) as api:
            assert api.get("/api/voice/voices").status_code == 502
