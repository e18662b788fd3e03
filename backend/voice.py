"""
Speech synthesis via the ElevenLabs API.

Failures raise CollaboratorError; the HTTP surface maps them to an explicit
error status.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from sentinel.core.config import VoiceConfig
from sentinel.core.exceptions import CollaboratorError

logger = logging.getLogger("backend.voice")


class VoiceSynthesizer:
    def __init__(self, settings: VoiceConfig, client: Optional[httpx.Client] = None) -> None:
        self.settings = settings
        self._client = client or httpx.Client(
            base_url=settings.base_url,
            headers={"xi-api-key": settings.api_key or ""},
            timeout=settings.timeout_seconds,
        )

    def text_to_speech(self, text: str, voice_id: Optional[str] = None) -> bytes:
        """Return MPEG audio for text."""
        voice = voice_id or self.settings.voice_id
        if not voice:
            raise CollaboratorError("Voice ID not configured")

        payload = {
            "text": text,
            "model_id": self.settings.model_id,
            "voice_settings": {
                "stability": self.settings.stability,
                "similarity_boost": self.settings.similarity_boost,
            },
        }
        response = self._request("POST", f"/text-to-speech/{voice}", json=payload)
        return response.content

    def available_voices(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/voices").json().get("voices", [])

    def usage(self) -> Dict[str, Any]:
        data = self._request("GET", "/user/subscription").json()
        count = data.get("character_count", 0)
        limit = data.get("character_limit") or 0
        return {
            "characterCount": count,
            "characterLimit": limit,
            "percentUsed": (count / limit) * 100 if limit else 0.0,
        }

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Voice API %s %s failed: %s", method, path, exc)
            raise CollaboratorError(f"Voice API request failed: {exc}") from exc
        return response
