"""
Shared response helpers: ConsultResult → HTTP, records → JSON.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import HTTPException

from sutra.consult.errors import ConsultResult, ErrorCode
from sutra.consult.identity import CallerIdentity
from sutra.consult.records import Message, Session

_STATUS_BY_CODE = {
    ErrorCode.UNAUTHORIZED: 403,
    ErrorCode.INVALID_DOCTOR: 403,
    ErrorCode.PATIENT_NOT_FOUND: 404,
    ErrorCode.SESSION_NOT_FOUND: 404,
    ErrorCode.INVALID_REFERRAL_CODE: 400,
    ErrorCode.PERSISTENCE_FAILURE: 503,
}


def status_for(result: ConsultResult, caller: Optional[CallerIdentity]) -> int:
    if result.error == ErrorCode.UNAUTHORIZED and caller is None:
        return 401
    return _STATUS_BY_CODE[result.error]


def unwrap(result: ConsultResult, caller: Optional[CallerIdentity]) -> Any:
    """Value of a successful result, else the matching HTTPException."""
    if result.ok:
        return result.value
    raise HTTPException(
        status_code=status_for(result, caller),
        detail={"error": result.error.value, "message": result.message},
    )


def message_json(message: Message) -> dict:
    return message.model_dump(mode="json")


def session_json(session: Session) -> dict:
    return session.model_dump(mode="json")
