from pydantic import BaseModel, Field
from typing import Optional


class CreateSessionRequest(BaseModel):
    patient_id: str
    doctor_id: str


class JoinSessionRequest(BaseModel):
    doctor_id: str
    referral_code: Optional[str] = None


class RedeemRequest(BaseModel):
    url: str


class CloseSessionRequest(BaseModel):
    closed_by: str = "admin"
    reason: Optional[str] = None


class CreateReferralRequest(BaseModel):
    doctor_id: str
    target_specialty: str = Field(min_length=1)
    notes: Optional[str] = None
