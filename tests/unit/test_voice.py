"""
Unit tests for speech synthesis.
"""

import json

import httpx
import pytest

from backend.voice import VoiceSynthesizer
from sentinel.core.config import VoiceConfig
from sentinel.core.exceptions import CollaboratorError


def _synth(handler, **settings) -> VoiceSynthesizer:
    client = httpx.Client(base_url="https://voice.test", transport=httpx.MockTransport(handler))
    return VoiceSynthesizer(VoiceConfig(**settings), client=client)


def test_text_to_speech_returns_audio():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b"ID3audio")

    synth = _synth(handler, voice_id="voice-1")
    assert synth.text_to_speech("Two open incidents.") == b"ID3audio"
    assert seen["path"] == "/text-to-speech/voice-1"
    assert seen["body"]["voice_settings"] == {"stability": 0.5, "similarity_boost": 0.75}


def test_text_to_speech_requires_voice_id():
    synth = _synth(lambda request: httpx.Response(200))
    with pytest.raises(CollaboratorError):
        synth.text_to_speech("hello")


def test_api_failure_raises_collaborator_error():
    synth = _synth(lambda request: httpx.Response(401), voice_id="voice-1")
    with pytest.raises(CollaboratorError):
        synth.text_to_speech("hello")


def test_usage_percentage():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"character_count": 2500, "character_limit": 10000})

    usage = _synth(handler).usage()
    assert usage == {"characterCount": 2500, "characterLimit": 10000, "percentUsed": 25.0}


def test_available_voices():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"voices": [{"voice_id": "v1"}]})

    assert _synth(handler).available_voices() == [{"voice_id": "v1"}]
