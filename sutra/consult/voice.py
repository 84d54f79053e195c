"""
Voice Processing Client — talks to the external AI service that turns a
voice note into transcription, summary and clinical entities.

The service is opaque: the response is parsed into ``VoiceAIProcessed`` and
otherwise trusted.  Any failure yields None and the voice note is sent
without an AI block.
"""

from __future__ import annotations

import base64
import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from sutra import settings
from sutra.consult.content import VoiceAIProcessed

logger = logging.getLogger("consult.voice")

LANGUAGE_HINTS = ("en", "hi", "hinglish")
PROCESS_PATH = "/api/voice/process"


class VoiceProcessingClient:
    def __init__(
        self,
        api_url: str = settings.AI_API_URL,
        timeout: float = settings.AI_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = (api_url or "").rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_url)

    async def process(self, audio: bytes, language_hint: str = "en") -> Optional[VoiceAIProcessed]:
        """POST the audio for processing.  Returns None if disabled or on any failure."""
        if language_hint not in LANGUAGE_HINTS:
            raise ValueError(f"language_hint must be one of {LANGUAGE_HINTS}, got {language_hint!r}")
        if not self.enabled:
            logger.debug("AI_API_URL not set, skipping voice processing")
            return None

        payload = {
            "audio_base64": base64.b64encode(audio).decode("ascii"),
            "language_hint": language_hint,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.api_url}{PROCESS_PATH}", json=payload)
                response.raise_for_status()
                result = VoiceAIProcessed.model_validate(response.json())
        except httpx.HTTPError as e:
            logger.error("Voice processing request failed: %s", e)
            return None
        except (ValueError, ValidationError) as e:
            logger.error("Voice processing returned an unreadable response: %s", e)
            return None

        logger.info(
            "Voice note processed (%d bytes, lang=%s, %d medicines)",
            len(audio), result.language_detected or language_hint, len(result.entities.medicines),
        )
        return result
