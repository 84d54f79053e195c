"""
Tests for the voice processing client, against an httpx mock transport.
"""

import base64
import json

import httpx
import pytest

from sutra.consult.voice import VoiceProcessingClient

AI_URL = "https://ai.sutra.test"

PROCESSED = {
    "transcription": "Take cetirizine at night",
    "summary": "Antihistamine at bedtime",
    "language_detected": "en",
    "entities": {
        "medicines": [{"name": "Cetirizine", "dosage": "10mg", "frequency": "OD"}],
        "conditions": ["allergic rhinitis"],
        "referral": None,
        "follow_up": {"condition": "no relief", "timeframe": "1 week", "action": "Book ENT review"},
    },
}


def _client(handler):
    return VoiceProcessingClient(api_url=AI_URL, timeout=5, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_successful_processing():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=PROCESSED)

    result = await _client(handler).process(b"\x00\x01audio", language_hint="hinglish")

    assert seen["url"] == f"{AI_URL}/api/voice/process"
    assert seen["body"]["language_hint"] == "hinglish"
    assert base64.b64decode(seen["body"]["audio_base64"]) == b"\x00\x01audio"
    assert result.transcription == "Take cetirizine at night"
    assert result.entities.medicines[0].name == "Cetirizine"
    assert result.entities.follow_up.action == "Book ENT review"


@pytest.mark.asyncio
async def test_server_error_yields_none():
    result = await _client(lambda request: httpx.Response(502, text="bad gateway")).process(b"a")
    assert result is None


@pytest.mark.asyncio
async def test_unreadable_body_yields_none():
    result = await _client(lambda request: httpx.Response(200, text="not json")).process(b"a")
    assert result is None


@pytest.mark.asyncio
async def test_wrong_shape_yields_none():
    body = {"entities": {"medicines": [{"dosage": "no name"}]}}
    result = await _client(lambda request: httpx.Response(200, json=body)).process(b"a")
    assert result is None


@pytest.mark.asyncio
async def test_connection_error_yields_none():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    assert await _client(handler).process(b"a") is None


@pytest.mark.asyncio
async def test_disabled_without_url():
    client = VoiceProcessingClient(api_url="")
    assert client.enabled is False
    assert await client.process(b"a") is None


@pytest.mark.asyncio
async def test_unknown_language_hint():
    with pytest.raises(ValueError):
        await _client(lambda request: httpx.Response(200, json=PROCESSED)).process(b"a", language_hint="fr")
