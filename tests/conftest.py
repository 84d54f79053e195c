"""
Shared fixtures for the Sutra API test suite.

Every test gets a fresh in-memory store wired through the real services,
injected into the app with a dependency override.  No GCS, no AI service.
"""

import pytest

from sutra.consult.records import Doctor, Patient, PersonalDetails
from sutra.consult.setup import build_services
from sutra.consult.store import InMemoryConsultStore
from sutra.consult.voice import VoiceProcessingClient

BASE_URL = "https://sutra.test"
ADMIN_KEY = "test-admin-key"


@pytest.fixture
def patient_headers():
    return {"X-Sutra-User-Id": "patient-p"}


@pytest.fixture
def doctor_headers():
    return {"X-Sutra-User-Id": "anon-d", "X-Sutra-Anonymous": "true"}


@pytest.fixture
def second_doctor_headers():
    return {"X-Sutra-User-Id": "anon-e", "X-Sutra-Anonymous": "true"}


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY}


@pytest.fixture
def services():
    services = build_services(
        store=InMemoryConsultStore(),
        voice_client=VoiceProcessingClient(api_url=""),
        base_url=BASE_URL,
    )
    services.store.insert("users", Patient(
        id="patient-p",
        full_name="Asha Rao",
        onboarded=True,
        personal_details=PersonalDetails(dob="1990-05-15", blood_type="O+"),
    ))
    services.store.insert("doctors", Doctor(
        id="doctor-d", anonymous_id="anon-d", display_name="Dr. Mehta", specialty="General Medicine",
    ))
    services.store.insert("doctors", Doctor(
        id="doctor-e", anonymous_id="anon-e", display_name="Dr. Iyer", specialty="Cardiology",
    ))
    return services


@pytest.fixture
def test_client(services, monkeypatch):
    """A TestClient whose services are the fresh in-memory instance above."""
    from fastapi.testclient import TestClient
    from sutra import settings
    from sutra.app import app
    from sutra.dependencies import get_services

    monkeypatch.setattr(settings, "ADMIN_API_KEY", ADMIN_KEY)
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def session_id(test_client, doctor_headers):
    """Doctor D has opened a session with patient P."""
    resp = test_client.post(
        "/api/sessions",
        json={"patient_id": "patient-p", "doctor_id": "doctor-d"},
        headers=doctor_headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["session_id"]
