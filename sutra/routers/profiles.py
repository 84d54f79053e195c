"""
Profiles API — patient onboarding and dashboards, doctor profiles, scan routing.

Endpoints:
  POST /api/profile/onboarding     Save the patient's onboarding profile
  GET  /api/me                     The calling patient's profile
  GET  /api/me/sessions            Recent sessions (newest first)
  GET  /api/me/medicines           Active medicine todos
  POST /api/doctors                Register / update the calling doctor
  GET  /api/doctors/me             The calling doctor's profile
  GET  /api/doctors/me/sessions    Sessions the calling doctor takes part in
  GET  /api/scan/{patient_id}      Where a patient-QR scan leads
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from sutra.consult.identity import CallerIdentity
from sutra.consult.profiles import RECENT_SESSIONS_LIMIT, OnboardingData
from sutra.dependencies import get_caller, get_services
from sutra.routers.responses import session_json, unwrap
from sutra.schemas.profiles import DoctorRegistrationRequest

router = APIRouter(tags=["profiles"])


# ── Patients ──


@router.post("/api/profile/onboarding")
async def save_onboarding(
    data: OnboardingData,
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    user_id = caller.id if caller else ""
    result = await services.profiles.save_onboarding(caller, user_id, data)
    return unwrap(result, caller).model_dump(mode="json")


@router.get("/api/me")
async def my_profile(
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    result = await services.profiles.get_patient(caller)
    return unwrap(result, caller).model_dump(mode="json")


@router.get("/api/me/sessions")
async def my_sessions(
    limit: int = Query(default=RECENT_SESSIONS_LIMIT, ge=1, le=50),
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    result = await services.profiles.list_patient_sessions(caller, limit=limit)
    return {
        "sessions": [
            {
                **session_json(s.session),
                "doctor_name": s.doctor_name,
                "doctor_specialty": s.doctor_specialty,
            }
            for s in unwrap(result, caller)
        ]
    }


@router.get("/api/me/medicines")
async def my_medicines(
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    result = await services.profiles.list_active_medicines(caller)
    return {"medicines": [m.model_dump(mode="json") for m in unwrap(result, caller)]}


# ── Doctors ──


@router.post("/api/doctors")
async def register_doctor(
    request: DoctorRegistrationRequest,
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    result = await services.profiles.register_doctor(caller, request.display_name, request.specialty)
    return unwrap(result, caller).model_dump(mode="json")


@router.get("/api/doctors/me")
async def my_doctor_profile(
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    result = await services.profiles.get_doctor_for_identity(caller)
    return unwrap(result, caller).model_dump(mode="json")


@router.get("/api/doctors/me/sessions")
async def my_doctor_sessions(
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    result = await services.profiles.list_doctor_sessions(caller)
    return {
        "sessions": [
            {
                **session_json(s.session),
                "role": s.role.value,
                "joined_at": s.joined_at.isoformat(),
                "patient_name": s.patient_name,
            }
            for s in unwrap(result, caller)
        ]
    }


# ── Scan routing ──


@router.get("/api/scan/{patient_id}")
async def route_scan(
    patient_id: str,
    caller: Optional[CallerIdentity] = Depends(get_caller),
    services=Depends(get_services),
):
    route = unwrap(await services.profiles.route_scan(caller, patient_id), caller)
    return {
        "outcome": route.outcome.value,
        "patient_id": route.patient_id,
        "patient_name": route.patient_name,
        "doctor_id": route.doctor_id,
        "needs_name": route.needs_name,
    }
