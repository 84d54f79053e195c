"""
Message Content — typed payloads for every message type.

A message's ``content`` shape is decided by its ``message_type``, never by
sniffing the payload.  ``CONTENT_MODELS`` is the single tag → model table;
everything that reads or writes content goes through it.

  text          TextContent
  voice         VoiceContent       (+ optional VoiceAIProcessed block on the message)
  prescription  PrescriptionContent
  referral      ReferralContent
  upload        UploadContent
  system        SystemContent
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class MessageType(str, Enum):
    TEXT = "text"
    VOICE = "voice"
    PRESCRIPTION = "prescription"
    REFERRAL = "referral"
    UPLOAD = "upload"
    SYSTEM = "system"


class SystemEvent(str, Enum):
    SESSION_CREATED = "session_created"
    DOCTOR_JOINED = "doctor_joined"
    SESSION_CLOSED = "session_closed"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Content payloads
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TextContent(BaseModel):
    text: str = Field(min_length=1)


class VoiceContent(BaseModel):
    audio_url: str
    duration_seconds: float = Field(ge=0)
    transcription: Optional[str] = None
    language_detected: Optional[str] = None


class PrescribedMedicine(BaseModel):
    name: str
    dosage: str
    frequency: str
    duration: Optional[str] = None
    notes: Optional[str] = None


class PrescriptionContent(BaseModel):
    medicines: list[PrescribedMedicine] = Field(min_length=1)
    instructions: Optional[str] = None


class ReferralContent(BaseModel):
    referral_id: str
    referral_code: str
    target_specialty: Optional[str] = None
    target_doctor_name: Optional[str] = None
    notes: Optional[str] = None
    qr_data: str  # redemption URL rendered as a QR by the client


class UploadContent(BaseModel):
    file_url: str
    file_type: Literal["image", "pdf", "other"] = "other"
    file_name: str
    ai_extracted_text: Optional[str] = None


class SystemContent(BaseModel):
    event: SystemEvent
    actor_name: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


MessageContent = Union[
    TextContent,
    VoiceContent,
    PrescriptionContent,
    ReferralContent,
    UploadContent,
    SystemContent,
]

CONTENT_MODELS: dict[MessageType, type[BaseModel]] = {
    MessageType.TEXT: TextContent,
    MessageType.VOICE: VoiceContent,
    MessageType.PRESCRIPTION: PrescriptionContent,
    MessageType.REFERRAL: ReferralContent,
    MessageType.UPLOAD: UploadContent,
    MessageType.SYSTEM: SystemContent,
}

# Types a patient or doctor may send through the messaging layer.
# Referral and system messages are only minted by their own operations.
USER_MESSAGE_TYPES = {
    MessageType.TEXT,
    MessageType.VOICE,
    MessageType.PRESCRIPTION,
    MessageType.UPLOAD,
}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  AI-processed block (voice messages only)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class ExtractedMedicine(BaseModel):
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None


class ReferralSuggestion(BaseModel):
    specialty: str
    doctor_name: Optional[str] = None
    condition: Optional[str] = None


class FollowUp(BaseModel):
    condition: str
    timeframe: str
    action: str


class VoiceEntities(BaseModel):
    medicines: list[ExtractedMedicine] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)
    referral: Optional[ReferralSuggestion] = None
    follow_up: Optional[FollowUp] = None


class VoiceAIProcessed(BaseModel):
    transcription: str = ""
    summary: str = ""
    language_detected: str = ""
    entities: VoiceEntities = Field(default_factory=VoiceEntities)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Tag helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def parse_content(message_type: MessageType | str, raw: Any) -> BaseModel:
    """Validate a raw payload against the model its tag names."""
    model = CONTENT_MODELS[MessageType(message_type)]
    if isinstance(raw, model):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    return model.model_validate(raw)


def message_type_for(content: BaseModel) -> MessageType:
    """Reverse lookup: the tag a content instance belongs under."""
    for message_type, model in CONTENT_MODELS.items():
        if type(content) is model:
            return message_type
    raise TypeError(f"Unknown message content type: {type(content).__name__}")


def describe_content(message_type: MessageType, content: BaseModel) -> str:
    """Short plain-text preview of a message, used for logs and dashboards."""
    if message_type == MessageType.TEXT:
        return content.text[:80]
    if message_type == MessageType.VOICE:
        if content.transcription:
            return f"Voice note: {content.transcription[:60]}"
        return f"Voice note ({int(content.duration_seconds)}s)"
    if message_type == MessageType.PRESCRIPTION:
        names = ", ".join(m.name for m in content.medicines)
        return f"Prescription: {names}"[:80]
    if message_type == MessageType.REFERRAL:
        return f"Referral to {content.target_specialty or 'specialist'} ({content.referral_code})"
    if message_type == MessageType.UPLOAD:
        return f"Uploaded {content.file_type}: {content.file_name}"
    if message_type == MessageType.SYSTEM:
        actor = f" by {content.actor_name}" if content.actor_name else ""
        return f"{content.event.value.replace('_', ' ')}{actor}"
    raise ValueError(f"Unhandled message type: {message_type}")
