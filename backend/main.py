"""
Minimal backend HTTP server for the LLM Safety Sentinel.

Translates JSON requests directly into IncidentManager operations and
assistant/voice calls. No state lives here beyond the service wiring.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
import json
import logging
import sys
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

from dotenv import load_dotenv

from backend.assistant_service import SafetyAssistantService, create_assistant_service
from backend.incident import IncidentManager
from backend.transport import EventPublisher, InMemoryTransport
from backend.voice import VoiceSynthesizer
from sentinel.core.config import config
from sentinel.core.exceptions import CollaboratorError, DataValidationError, SentinelError
from sentinel.core.logging_config import setup_logging

load_dotenv()

logger = logging.getLogger("backend")


@dataclass
class Services:
    manager: IncidentManager
    assistant: SafetyAssistantService
    voice: Optional[VoiceSynthesizer] = None
    transport: Any = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_count(query: Dict[str, list], default: int = 10) -> int:
    try:
        return int(query.get("count", [default])[0])
    except (TypeError, ValueError):
        return default


class BackendHandler(BaseHTTPRequestHandler):
    server_version = "SentinelBackend/1.0"

    @property
    def services(self) -> Services:
        return self.server.services  # type: ignore[attr-defined]

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)

    def _send_json(self, status: int, payload: Dict[str, Any]) -> None:
        body = json.dumps(payload, default=str).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_audio(self, audio: bytes) -> None:
        self.send_response(200)
        self.send_header("Content-Type", "audio/mpeg")
        self.send_header("Content-Length", str(len(audio)))
        self.end_headers()
        self.wfile.write(audio)

    def _read_json(self) -> Dict[str, Any]:
        length = int(self.headers.get("Content-Length", "0"))
        if length <= 0:
            return {}
        data = self.rfile.read(length)
        try:
            payload = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return {}
        return payload if isinstance(payload, dict) else {}

    def _route(self) -> Tuple[str, Dict[str, list]]:
        parts = urlsplit(self.path)
        return parts.path.rstrip("/") or "/", parse_qs(parts.query)

    def do_OPTIONS(self) -> None:
        self.send_response(204)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.end_headers()

    def do_GET(self) -> None:
        path, query = self._route()
        try:
            self._handle_get(path, query)
        except Exception:
            logger.exception("GET %s failed", path)
            self._send_json(500, {"error": "Internal server error"})

    def _handle_get(self, path: str, query: Dict[str, list]) -> None:
        manager = self.services.manager

        if path == "/health":
            self._send_json(200, {"status": "ok", "timestamp": _now_iso()})
            return

        if path == "/api/metrics/safety":
            self._send_json(200, manager.get_safety_metrics().to_wire())
            return

        if path == "/api/metrics/cost":
            self._send_json(200, manager.get_cost_analytics().to_wire())
            return

        if path == "/api/incidents":
            incidents = manager.get_recent_incidents(_parse_count(query))
            self._send_json(
                200, {"incidents": [i.to_wire() for i in incidents], "count": len(incidents)}
            )
            return

        if path.startswith("/api/incidents/"):
            incident = manager.get_incident_details(path.split("/")[3])
            if incident is None:
                self._send_json(404, {"error": "Incident not found"})
                return
            self._send_json(200, incident.to_wire())
            return

        if path == "/api/voice/usage":
            self._with_voice(lambda voice: self._send_json(200, voice.usage()))
            return

        if path == "/api/voice/voices":
            self._with_voice(
                lambda voice: self._send_json(200, {"voices": voice.available_voices()})
            )
            return

        self._send_json(404, {"error": "Not found"})

    def do_POST(self) -> None:
        path, _ = self._route()
        payload = self._read_json()

        try:
            if path == "/api/llm/request":
                self._handle_request(payload)
            elif path == "/api/llm/response":
                self._handle_response(payload)
            elif path.startswith("/api/incidents/") and path.endswith("/close"):
                self._handle_close(path.split("/")[3], payload)
            elif path == "/api/voice/query":
                self._handle_query(payload)
            elif path == "/api/voice/speak":
                self._handle_speak(payload)
            elif path == "/api/analysis/summarize":
                self._handle_summarize()
            elif path == "/api/analysis/root-cause":
                self._handle_root_cause(payload)
            elif path == "/api/analysis/remediation":
                self._handle_remediation(payload)
            else:
                self._send_json(404, {"error": "Not found"})
        except DataValidationError as exc:
            self._send_json(400, {"error": str(exc), "fields": exc.fields})
        except SentinelError as exc:
            logger.exception("Request to %s failed", path)
            self._send_json(500, {"error": "Internal server error", "message": str(exc)})
        except Exception:
            logger.exception("Unexpected error handling %s", path)
            self._send_json(500, {"error": "Internal server error"})

    def _handle_request(self, payload: Dict[str, Any]) -> None:
        receipt = self.services.manager.record_request(payload)
        self._send_json(200, {"success": True, **receipt.to_wire()})

    def _handle_response(self, payload: Dict[str, Any]) -> None:
        receipt = self.services.manager.record_response(payload)
        self._send_json(200, {"success": True, **receipt.to_wire()})

    def _handle_close(self, incident_id: str, payload: Dict[str, Any]) -> None:
        incident = self.services.manager.close_incident(incident_id, payload.get("resolution"))
        if incident is None:
            self._send_json(404, {"error": "Incident not found"})
            return
        self._send_json(200, {"success": True, "incident": incident.to_wire()})

    def _handle_query(self, payload: Dict[str, Any]) -> None:
        question = payload.get("query")
        if not question:
            raise DataValidationError.missing(["query"])
        context = self._context(recent=5)
        if payload.get("spoken"):
            answer = self.services.assistant.voice_response(question, context)
        else:
            answer = self.services.assistant.query(question, context)
        self._send_json(200, {"query": question, "response": answer, "timestamp": _now_iso()})

    def _handle_speak(self, payload: Dict[str, Any]) -> None:
        text = payload.get("text")
        if not text:
            raise DataValidationError.missing(["text"])
        self._with_voice(lambda voice: self._send_audio(voice.text_to_speech(text)))

    def _handle_summarize(self) -> None:
        incidents = self.services.manager.get_recent_incidents(10)
        summary = self.services.assistant.summarize_incidents(incidents)
        self._send_json(
            200, {"incidentCount": len(incidents), "summary": summary, "timestamp": _now_iso()}
        )

    def _handle_root_cause(self, payload: Dict[str, Any]) -> None:
        incident_id = payload.get("incidentId")
        incident = self.services.manager.get_incident_details(incident_id) if incident_id else None
        if incident is None:
            self._send_json(404, {"error": "Incident not found"})
            return
        related = self._context()
        analysis = self.services.assistant.analyze_root_cause(incident, related)
        self._send_json(
            200, {"incidentId": incident_id, "analysis": analysis, "timestamp": _now_iso()}
        )

    def _handle_remediation(self, payload: Dict[str, Any]) -> None:
        incident_id = payload.get("incidentId")
        incident = self.services.manager.get_incident_details(incident_id) if incident_id else None
        if incident is None:
            self._send_json(404, {"error": "Incident not found"})
            return
        steps = self.services.assistant.suggest_remediation(
            incident.type.value, incident.severity.value, {"incident": incident.to_wire()}
        )
        self._send_json(
            200, {"incidentId": incident_id, "remediation": steps, "timestamp": _now_iso()}
        )

    def _context(self, recent: int = 0) -> Dict[str, Any]:
        manager = self.services.manager
        context: Dict[str, Any] = {
            "metrics": manager.get_safety_metrics().to_wire(),
            "costAnalytics": manager.get_cost_analytics().to_wire(),
        }
        if recent:
            context["recentIncidents"] = [i.to_wire() for i in manager.get_recent_incidents(recent)]
        return context

    def _with_voice(self, action) -> None:
        voice = self.services.voice
        if voice is None:
            self._send_json(503, {"error": "Voice synthesis not configured"})
            return
        try:
            action(voice)
        except CollaboratorError as exc:
            self._send_json(502, {"error": str(exc)})


def build_services() -> Services:
    """
    Wire the manager to a transport.

    Uses Kafka when bootstrap servers are configured, otherwise an in-memory
    transport. A Kafka connection failure here is fatal.
    """
    if config.transport.bootstrap_servers:
        from backend.transport.kafka_transport import KafkaTransport

        transport = KafkaTransport(config.transport)
        transport.connect()
        transport.ensure_topics()
    else:
        logger.warning("No Kafka bootstrap servers configured; using in-memory transport")
        transport = InMemoryTransport()

    manager = IncidentManager(EventPublisher(transport, config.transport.topics))
    voice = VoiceSynthesizer(config.voice) if config.voice.api_key else None
    return Services(
        manager=manager,
        assistant=create_assistant_service(config.model_path),
        voice=voice,
        transport=transport,
    )


def create_server(host: str, port: int, services: Services) -> ThreadingHTTPServer:
    server = ThreadingHTTPServer((host, port), BackendHandler)
    server.services = services  # type: ignore[attr-defined]
    return server


def run(host: str, port: int) -> None:
    try:
        services = build_services()
    except SentinelError as exc:
        logger.error("Failed to start server: %s", exc)
        sys.exit(1)

    server = create_server(host, port, services)
    logger.info("LLM Safety Sentinel running on %s:%s", host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    finally:
        server.server_close()
        close = getattr(services.transport, "close", None)
        if close is not None:
            close()


def main() -> None:
    setup_logging("backend")
    setup_logging("sentinel")

    parser = argparse.ArgumentParser(description="LLM Safety Sentinel backend server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=3000)
    args = parser.parse_args()

    run(args.host, args.port)


if __name__ == "__main__":
    main()
