"""
Shared fixtures for the consult core tests.

Everything runs against a fresh InMemoryConsultStore; no network, no GCS.
"""

import pytest

from sutra.consult.identity import CallerIdentity
from sutra.consult.records import (
    CurrentMedication,
    Doctor,
    EmergencyContact,
    MedicalProfile,
    Patient,
    PersonalDetails,
)
from sutra.consult.setup import build_services
from sutra.consult.store import InMemoryConsultStore
from sutra.consult.voice import VoiceProcessingClient

BASE_URL = "https://sutra.test"


@pytest.fixture
def app_base_url():
    return BASE_URL


@pytest.fixture
def store():
    return InMemoryConsultStore()


@pytest.fixture
def services(store):
    return build_services(
        store=store,
        voice_client=VoiceProcessingClient(api_url=""),
        base_url=BASE_URL,
    )


@pytest.fixture
def patient(store):
    return store.insert("users", Patient(
        id="patient-p",
        email="asha@example.com",
        full_name="Asha Rao",
        onboarded=True,
        personal_details=PersonalDetails(
            dob="1990-05-15",
            gender="female",
            blood_type="O+",
            emergency_contact=EmergencyContact(name="Ravi Rao", phone="+91 98000 00000", relationship="brother"),
        ),
        medical_profile=MedicalProfile(
            allergies=["Penicillin"],
            chronic_conditions=["Asthma"],
            current_meds=[CurrentMedication(name="Salbutamol", dosage="100mcg", frequency="as needed")],
        ),
    ))


@pytest.fixture
def doctor(store):
    return store.insert("doctors", Doctor(
        id="doctor-d", anonymous_id="anon-d", display_name="Dr. Mehta", specialty="General Medicine",
    ))


@pytest.fixture
def second_doctor(store):
    return store.insert("doctors", Doctor(
        id="doctor-e", anonymous_id="anon-e", display_name="Dr. Iyer", specialty="Cardiology",
    ))


@pytest.fixture
def patient_caller(patient):
    return CallerIdentity(id=patient.id, is_anonymous=False)


@pytest.fixture
def doctor_caller(doctor):
    return CallerIdentity(id=doctor.anonymous_id, is_anonymous=True)


@pytest.fixture
def second_doctor_caller(second_doctor):
    return CallerIdentity(id=second_doctor.anonymous_id, is_anonymous=True)


@pytest.fixture
def open_session(services, patient, doctor, doctor_caller):
    """Async helper: doctor D opens a session with patient P, returns the id."""

    async def _open():
        result = await services.lifecycle.create_session(doctor_caller, patient.id, doctor.id)
        assert result.ok, result.message
        return result.value

    return _open


@pytest.fixture
def mint_referral(services, doctor, doctor_caller):
    """Async helper: doctor D refers the session on, returns the referral message."""

    async def _mint(session_id, specialty="Cardiology", notes=None):
        result = await services.referrals.create_referral(
            doctor_caller, session_id, doctor.id, specialty, notes,
        )
        assert result.ok, result.message
        return result.value

    return _mint
