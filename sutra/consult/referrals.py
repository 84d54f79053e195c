"""
Referral Issuance — mints session-scoped referral codes and their
redemption URLs.

A referral is only an artifact: redeeming it (admitting the referred
doctor) is done by the lifecycle manager's join path.

Redemption URL format (encoded into the QR the patient carries):
    {base_origin}/{patient_id}/{session_id}?ref={CODE}
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import parse_qs, urlsplit

from sutra import settings
from sutra.consult.content import MessageType, ReferralContent
from sutra.consult.errors import ConsultError, ErrorCode, consult_operation, persistence_failure
from sutra.consult.identity import CallerIdentity
from sutra.consult.permissions import SessionAccessChecker
from sutra.consult.records import Message, Referral, ReferralStatus, SenderType
from sutra.consult.store import ConsultStore, StoreError

logger = logging.getLogger("consult.referrals")

CODE_LENGTH = 6
CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 5


def generate_referral_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def normalise_referral_code(code: str) -> str:
    return (code or "").strip().upper()


def build_redemption_url(base_url: str, patient_id: str, session_id: str, code: str) -> str:
    return f"{base_url.rstrip('/')}/{patient_id}/{session_id}?ref={code}"


@dataclass(frozen=True)
class RedemptionLink:
    patient_id: str
    session_id: str
    referral_code: Optional[str] = None


def parse_redemption_url(url: str) -> RedemptionLink:
    """
    Split a scanned session URL into its parts.

    Raises ValueError when the path does not end in ``/{patient_id}/{session_id}``.
    """
    parts = urlsplit((url or "").strip())
    segments = [s for s in parts.path.split("/") if s]
    if len(segments) < 2:
        raise ValueError(f"Not a session URL: {url!r}")
    patient_id, session_id = segments[-2], segments[-1]
    refs = parse_qs(parts.query).get("ref")
    code = normalise_referral_code(refs[0]) if refs else None
    return RedemptionLink(patient_id=patient_id, session_id=session_id, referral_code=code or None)


class ReferralIssuer:
    """Creates referrals for doctors already participating in a session."""

    def __init__(
        self,
        store: ConsultStore,
        access_checker: SessionAccessChecker,
        base_url: str = settings.APP_BASE_URL,
        code_factory: Callable[[], str] = generate_referral_code,
    ) -> None:
        self._store = store
        self._access = access_checker
        self._base_url = base_url
        self._code_factory = code_factory

    @consult_operation("create_referral")
    async def create_referral(
        self,
        caller: Optional[CallerIdentity],
        session_id: str,
        doctor_id: str,
        target_specialty: str,
        notes: Optional[str] = None,
    ) -> Message:
        """
        Mint a pending referral and post it into the session as a referral message.

        Returns the referral message, whose content carries the code and the
        redemption URL.
        """
        if caller is None:
            raise ConsultError(ErrorCode.UNAUTHORIZED)
        if not self._access.check_doctor_participant(caller, session_id, doctor_id).allowed:
            raise ConsultError(ErrorCode.UNAUTHORIZED)

        session = self._store.get("sessions", session_id)
        if session is None:
            raise ConsultError(ErrorCode.SESSION_NOT_FOUND)

        code = self._unique_code()
        try:
            referral = self._store.insert("referrals", Referral(
                session_id=session_id,
                created_by_doctor_id=doctor_id,
                referral_code=code,
                target_specialty=target_specialty,
                notes=notes or None,
                status=ReferralStatus.PENDING,
            ))
        except StoreError as e:
            logger.error("Referral insert failed (session=%s, doctor=%s): %s", session_id, doctor_id, e)
            raise persistence_failure("create referral") from e

        qr_data = build_redemption_url(self._base_url, session.patient_id, session_id, code)
        try:
            message = self._store.insert("messages", Message(
                session_id=session_id,
                sender_type=SenderType.DOCTOR,
                sender_id=doctor_id,
                message_type=MessageType.REFERRAL,
                content=ReferralContent(
                    referral_id=referral.id,
                    referral_code=code,
                    target_specialty=target_specialty,
                    notes=notes or None,
                    qr_data=qr_data,
                ),
            ))
        except StoreError as e:
            logger.error(
                "Referral message insert failed (session=%s, referral=%s): %s",
                session_id, referral.id, e,
            )
            raise persistence_failure("create referral message") from e

        logger.info(
            "Referral %s minted in session %s by doctor %s → %s",
            code, session_id, doctor_id, target_specialty,
        )
        return message

    def _unique_code(self) -> str:
        """A fresh code not used by any existing referral."""
        for _ in range(MAX_CODE_ATTEMPTS):
            code = normalise_referral_code(self._code_factory())
            if not self._store.select("referrals", referral_code=code, limit=1):
                return code
            logger.warning("Referral code collision on %s, regenerating", code)
        raise persistence_failure("create referral")
