from pydantic import BaseModel, Field
from typing import Any, Literal, Optional

from sutra.consult.content import VoiceAIProcessed


class SendMessageRequest(BaseModel):
    sender_id: str
    sender_type: Literal["patient", "doctor"]
    message_type: Literal["text", "prescription", "upload"] = "text"
    content: dict[str, Any]


class VoiceMessageRequest(BaseModel):
    sender_id: str
    sender_type: Literal["patient", "doctor"]
    audio_url: str
    duration_seconds: float = Field(ge=0)
    audio_base64: Optional[str] = None  # sent to the AI service when present
    language_hint: Literal["en", "hi", "hinglish"] = "en"
    ai_processed: Optional[VoiceAIProcessed] = None  # already processed client-side
