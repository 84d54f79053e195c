"""
Consultation Records — the rows the data store holds.

  users                 Patient (identity, onboarding profile)
  doctors               Doctor (linked to an anonymous identity)
  sessions              Session (+ immutable HealthSnapshot)
  session_participants  SessionParticipant (primary / referred)
  messages              Message (append-only, typed content)
  referrals             Referral (pending → accepted)
  medicine_todos        MedicineTodo (derived from voice notes)
  follow_up_reminders   FollowUpReminder (derived from voice notes)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from sutra.consult.content import (
    CONTENT_MODELS,
    MessageContent,
    MessageType,
    VoiceAIProcessed,
    parse_content,
)
from sutra.consult.validators import calculate_age


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_uuid() -> str:
    return str(uuid.uuid4())


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Enums
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class SenderType(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    SYSTEM = "system"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class ParticipantRole(str, Enum):
    PRIMARY = "primary"
    REFERRED = "referred"


class ReferralStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


Gender = Literal["male", "female", "other", "prefer_not_to_say"]
BloodType = Literal["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-", "unknown"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Patient profile
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class EmergencyContact(BaseModel):
    name: str
    phone: str = ""
    relationship: str = ""


class PersonalDetails(BaseModel):
    dob: Optional[str] = None  # ISO date
    gender: Optional[Gender] = None
    blood_type: Optional[BloodType] = None
    emergency_contact: Optional[EmergencyContact] = None


class CurrentMedication(BaseModel):
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None


class PastSurgery(BaseModel):
    name: str
    year: Optional[int] = None


class MedicalProfile(BaseModel):
    # None means "never filled in"; the snapshot treats it as empty
    allergies: Optional[list[str]] = None
    chronic_conditions: Optional[list[str]] = None
    current_meds: Optional[list[CurrentMedication]] = None
    past_surgeries: Optional[list[PastSurgery]] = None


class Patient(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    email_verified: bool = False
    onboarded: bool = False
    personal_details: PersonalDetails = Field(default_factory=PersonalDetails)
    medical_profile: MedicalProfile = Field(default_factory=MedicalProfile)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Doctor(BaseModel):
    id: str = Field(default_factory=_new_uuid)
    anonymous_id: Optional[str] = None  # identity-provider subject
    display_name: Optional[str] = None
    specialty: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Sessions
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class SnapshotContact(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    phone: str = ""


class HealthSnapshot(BaseModel):
    """Point-in-time copy of the patient's profile, taken once at session creation."""

    model_config = ConfigDict(frozen=True)

    name: str
    age: int
    blood_type: Optional[str] = None
    allergies: tuple[str, ...] = ()
    chronic_conditions: tuple[str, ...] = ()
    current_medications: tuple[CurrentMedication, ...] = ()
    emergency_contact: Optional[SnapshotContact] = None
    generated_at: datetime = Field(default_factory=_now)

    @classmethod
    def from_patient(cls, patient: Patient, today: date | None = None) -> HealthSnapshot:
        details = patient.personal_details
        profile = patient.medical_profile
        contact = None
        if details.emergency_contact is not None:
            contact = SnapshotContact(
                name=details.emergency_contact.name,
                phone=details.emergency_contact.phone,
            )
        return cls(
            name=patient.full_name or "Patient",
            age=calculate_age(details.dob, today=today) if details.dob else 0,
            blood_type=details.blood_type,
            allergies=tuple(profile.allergies or []),
            chronic_conditions=tuple(profile.chronic_conditions or []),
            current_medications=tuple(
                m.model_copy() for m in (profile.current_meds or [])
            ),
            emergency_contact=contact,
        )


class Session(BaseModel):
    id: str = Field(default_factory=_new_uuid)
    patient_id: str
    created_by_doctor_id: Optional[str] = None
    status: SessionStatus = SessionStatus.ACTIVE
    health_snapshot: Optional[HealthSnapshot] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


class SessionParticipant(BaseModel):
    id: str = Field(default_factory=_new_uuid)
    session_id: str
    doctor_id: str
    role: ParticipantRole
    joined_at: datetime = Field(default_factory=_now)


class Message(BaseModel):
    """Append-only chat row.  ``content`` is parsed by ``message_type``."""

    id: str = Field(default_factory=_new_uuid)
    session_id: str
    sender_type: SenderType
    sender_id: Optional[str] = None  # None for system messages
    message_type: MessageType
    content: MessageContent
    ai_processed: Optional[VoiceAIProcessed] = None
    created_at: datetime = Field(default_factory=_now)

    @model_validator(mode="before")
    @classmethod
    def _parse_tagged_content(cls, data):
        if isinstance(data, dict) and "message_type" in data and "content" in data:
            data = dict(data)
            data["content"] = parse_content(data["message_type"], data["content"])
        return data

    @model_validator(mode="after")
    def _check_shape(self) -> Message:
        expected = CONTENT_MODELS[self.message_type]
        if not isinstance(self.content, expected):
            raise ValueError(
                f"content for '{self.message_type.value}' must be {expected.__name__}"
            )
        if self.ai_processed is not None and self.message_type != MessageType.VOICE:
            raise ValueError("ai_processed is only allowed on voice messages")
        if self.sender_type == SenderType.SYSTEM and self.sender_id is not None:
            raise ValueError("system messages carry no sender_id")
        return self


class Referral(BaseModel):
    id: str = Field(default_factory=_new_uuid)
    session_id: str
    created_by_doctor_id: Optional[str] = None
    referral_code: str
    target_specialty: Optional[str] = None
    notes: Optional[str] = None
    status: ReferralStatus = ReferralStatus.PENDING
    accepted_by_doctor_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    accepted_at: Optional[datetime] = None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Voice-note side effects
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class MedicineTodo(BaseModel):
    id: str = Field(default_factory=_new_uuid)
    patient_id: str
    session_id: Optional[str] = None
    message_id: Optional[str] = None
    medicine_name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    instructions: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_now)


class FollowUpReminder(BaseModel):
    id: str = Field(default_factory=_new_uuid)
    patient_id: str
    session_id: Optional[str] = None
    message_id: Optional[str] = None
    reminder_text: str
    trigger_condition: Optional[str] = None
    trigger_value: Optional[str] = None
    target_doctor_name: Optional[str] = None
    is_triggered: bool = False
    created_at: datetime = Field(default_factory=_now)


# table name → row model
TABLE_MODELS: dict[str, type[BaseModel]] = {
    "users": Patient,
    "doctors": Doctor,
    "sessions": Session,
    "session_participants": SessionParticipant,
    "messages": Message,
    "referrals": Referral,
    "medicine_todos": MedicineTodo,
    "follow_up_reminders": FollowUpReminder,
}
