"""
Profiles — patient onboarding, doctor registration, scan routing, dashboards.

Patients are non-anonymous identities and own their ``users`` row.  Doctors
are anonymous identities linked to one ``doctors`` row, created on their
first scan.  Profile edits never reach existing session snapshots.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from sutra.consult.errors import ConsultError, ErrorCode, consult_operation, persistence_failure
from sutra.consult.identity import CallerIdentity
from sutra.consult.records import (
    CurrentMedication,
    Doctor,
    EmergencyContact,
    MedicalProfile,
    MedicineTodo,
    ParticipantRole,
    Patient,
    PersonalDetails,
    Session,
    _now,
)
from sutra.consult.store import ConsultStore, StoreError
from sutra.consult.validators import normalise_blood_type, normalise_gender, validate_dob

logger = logging.getLogger("consult.profiles")

RECENT_SESSIONS_LIMIT = 5


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Inputs / outputs
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class MedicationEntry(BaseModel):
    name: str = Field(min_length=1)
    dosage: str = ""
    frequency: str = ""


class OnboardingData(BaseModel):
    """What the onboarding wizard submits."""

    full_name: str = Field(min_length=1)
    dob: str = ""
    gender: str = ""
    blood_type: str = ""
    emergency_contact_name: str = ""
    emergency_contact_phone: str = ""
    emergency_contact_relation: str = ""
    allergies: list[str] = Field(default_factory=list)
    chronic_conditions: list[str] = Field(default_factory=list)
    current_medications: list[MedicationEntry] = Field(default_factory=list)

    @field_validator("dob")
    @classmethod
    def _check_dob(cls, v: str) -> str:
        if v and not validate_dob(v):
            raise ValueError("date of birth must be a past date within 120 years")
        return v

    @field_validator("gender")
    @classmethod
    def _check_gender(cls, v: str) -> str:
        if v and normalise_gender(v) is None:
            raise ValueError(f"unsupported gender '{v}'")
        return v

    @field_validator("blood_type")
    @classmethod
    def _check_blood_type(cls, v: str) -> str:
        if v and normalise_blood_type(v) is None:
            raise ValueError(f"unsupported blood type '{v}'")
        return v


class ScanOutcome(str, Enum):
    OWN_PROFILE = "own_profile"
    INVALID_PATIENT = "invalid_patient"
    NEEDS_DOCTOR_PROFILE = "needs_doctor_profile"
    READY = "ready"


@dataclass
class ScanRoute:
    outcome: ScanOutcome
    patient_id: str
    patient_name: Optional[str] = None
    doctor_id: Optional[str] = None
    needs_name: bool = False


@dataclass
class PatientSessionSummary:
    session: Session
    doctor_name: Optional[str] = None
    doctor_specialty: Optional[str] = None


@dataclass
class DoctorSessionSummary:
    session: Session
    role: ParticipantRole
    joined_at: datetime
    patient_name: Optional[str] = None


def _clean_list(values: list[str]) -> Optional[list[str]]:
    cleaned = [v.strip() for v in values if v and v.strip()]
    return cleaned or None


def build_profile(data: OnboardingData) -> tuple[PersonalDetails, MedicalProfile]:
    """Onboarding form → stored profile.  Empty lists are stored as absent."""
    contact = None
    if data.emergency_contact_name.strip():
        contact = EmergencyContact(
            name=data.emergency_contact_name.strip(),
            phone=data.emergency_contact_phone.strip(),
            relationship=data.emergency_contact_relation.strip(),
        )
    details = PersonalDetails(
        dob=data.dob or None,
        gender=normalise_gender(data.gender),
        blood_type=normalise_blood_type(data.blood_type),
        emergency_contact=contact,
    )
    meds = [
        CurrentMedication(name=m.name, dosage=m.dosage or None, frequency=m.frequency or None)
        for m in data.current_medications
    ]
    profile = MedicalProfile(
        allergies=_clean_list(data.allergies),
        chronic_conditions=_clean_list(data.chronic_conditions),
        current_meds=meds or None,
    )
    return details, profile


class ProfileService:
    def __init__(self, store: ConsultStore) -> None:
        self._store = store

    # ── Patients ──

    @consult_operation("save_onboarding")
    async def save_onboarding(
        self, caller: Optional[CallerIdentity], user_id: str, data: OnboardingData
    ) -> Patient:
        """Store the patient's profile and mark them onboarded."""
        if caller is None or caller.is_anonymous or caller.id != user_id:
            raise ConsultError(ErrorCode.UNAUTHORIZED)

        details, profile = build_profile(data)
        changes = {
            "full_name": data.full_name.strip(),
            "personal_details": details,
            "medical_profile": profile,
            "onboarded": True,
            "updated_at": _now(),
        }
        try:
            if self._store.get("users", user_id) is None:
                # Identity exists upstream but has no row yet
                patient = self._store.insert("users", Patient(id=user_id, **changes))
            else:
                patient = self._store.update("users", user_id, changes)
        except StoreError as e:
            logger.error("Onboarding save failed (user=%s): %s", user_id, e)
            raise persistence_failure("save profile") from e

        logger.info("Patient %s onboarded", user_id)
        return patient

    @consult_operation("get_patient")
    async def get_patient(self, caller: Optional[CallerIdentity]) -> Patient:
        if caller is None or caller.is_anonymous:
            raise ConsultError(ErrorCode.UNAUTHORIZED)
        patient = self._store.get("users", caller.id)
        if patient is None:
            raise ConsultError(ErrorCode.PATIENT_NOT_FOUND)
        return patient

    @consult_operation("list_patient_sessions")
    async def list_patient_sessions(
        self, caller: Optional[CallerIdentity], limit: int = RECENT_SESSIONS_LIMIT
    ) -> list[PatientSessionSummary]:
        """The caller's most recent sessions, newest first, with the creating doctor."""
        if caller is None or caller.is_anonymous:
            raise ConsultError(ErrorCode.UNAUTHORIZED)
        sessions = self._store.select(
            "sessions", patient_id=caller.id,
            order_by="created_at", descending=True, limit=limit,
        )
        summaries = []
        for session in sessions:
            doctor = None
            if session.created_by_doctor_id:
                doctor = self._store.get("doctors", session.created_by_doctor_id)
            summaries.append(PatientSessionSummary(
                session=session,
                doctor_name=doctor.display_name if doctor else None,
                doctor_specialty=doctor.specialty if doctor else None,
            ))
        return summaries

    @consult_operation("list_active_medicines")
    async def list_active_medicines(self, caller: Optional[CallerIdentity]) -> list[MedicineTodo]:
        if caller is None or caller.is_anonymous:
            raise ConsultError(ErrorCode.UNAUTHORIZED)
        return self._store.select(
            "medicine_todos", patient_id=caller.id, is_active=True,
            order_by="created_at", descending=True,
        )

    # ── Doctors ──

    def _doctor_for(self, caller: CallerIdentity) -> Optional[Doctor]:
        return self._store.maybe_single("doctors", anonymous_id=caller.id)

    @consult_operation("register_doctor")
    async def register_doctor(
        self,
        caller: Optional[CallerIdentity],
        display_name: str,
        specialty: Optional[str] = None,
    ) -> Doctor:
        """Create the caller's doctor record, or update its name and specialty."""
        if caller is None or not caller.is_anonymous:
            raise ConsultError(ErrorCode.UNAUTHORIZED)
        name = (display_name or "").strip()
        if not name:
            raise ConsultError(ErrorCode.INVALID_DOCTOR, "Display name is required")

        existing = self._doctor_for(caller)
        try:
            if existing is not None:
                doctor = self._store.update("doctors", existing.id, {
                    "display_name": name,
                    "specialty": specialty or None,
                })
            else:
                doctor = self._store.insert("doctors", Doctor(
                    anonymous_id=caller.id,
                    display_name=name,
                    specialty=specialty or None,
                ))
        except StoreError as e:
            logger.error("Doctor profile save failed (identity=%s): %s", caller.id, e)
            raise persistence_failure("create doctor profile") from e

        logger.info("Doctor %s %s (%s)", doctor.id, "updated" if existing else "registered", name)
        return doctor

    @consult_operation("get_doctor_for_identity")
    async def get_doctor_for_identity(self, caller: Optional[CallerIdentity]) -> Doctor:
        if caller is None:
            raise ConsultError(ErrorCode.UNAUTHORIZED)
        doctor = self._doctor_for(caller)
        if doctor is None:
            raise ConsultError(ErrorCode.INVALID_DOCTOR, "No doctor profile for this identity")
        return doctor

    @consult_operation("list_doctor_sessions")
    async def list_doctor_sessions(self, caller: Optional[CallerIdentity]) -> list[DoctorSessionSummary]:
        """Every session the caller's doctor participates in, most recently joined first."""
        if caller is None:
            raise ConsultError(ErrorCode.UNAUTHORIZED)
        doctor = self._doctor_for(caller)
        if doctor is None:
            raise ConsultError(ErrorCode.INVALID_DOCTOR, "No doctor profile for this identity")

        participations = self._store.select(
            "session_participants", doctor_id=doctor.id,
            order_by="joined_at", descending=True,
        )
        summaries = []
        for participation in participations:
            session = self._store.get("sessions", participation.session_id)
            if session is None:
                continue
            snapshot = session.health_snapshot
            summaries.append(DoctorSessionSummary(
                session=session,
                role=participation.role,
                joined_at=participation.joined_at,
                patient_name=snapshot.name if snapshot else None,
            ))
        return summaries

    # ── Scan routing ──

    @consult_operation("route_scan")
    async def route_scan(self, caller: Optional[CallerIdentity], patient_id: str) -> ScanRoute:
        """Where a scan of a patient's identity QR leads."""
        if caller is not None and not caller.is_anonymous and caller.id == patient_id:
            return ScanRoute(ScanOutcome.OWN_PROFILE, patient_id=patient_id)

        patient = self._store.get("users", patient_id)
        if patient is None or not patient.onboarded:
            return ScanRoute(ScanOutcome.INVALID_PATIENT, patient_id=patient_id)

        patient_name = patient.full_name or "Patient"
        doctor = self._doctor_for(caller) if caller is not None and caller.is_anonymous else None
        if doctor is None:
            return ScanRoute(
                ScanOutcome.NEEDS_DOCTOR_PROFILE,
                patient_id=patient_id,
                patient_name=patient_name,
                needs_name=True,
            )
        return ScanRoute(
            ScanOutcome.READY,
            patient_id=patient_id,
            patient_name=patient_name,
            doctor_id=doctor.id,
            needs_name=not doctor.display_name,
        )
