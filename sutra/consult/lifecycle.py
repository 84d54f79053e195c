"""
Session Lifecycle Manager — creates sessions, admits doctors, closes sessions.

Writes are independent single-row statements with no wrapping transaction.
Only the first write of each operation is fatal; follow-on writes
(participant row after session creation, system messages) are logged on
failure and the operation still succeeds.

Session.status:   active → closed   (terminal; only via close_session)
Referral.status:  pending → accepted (terminal; re-acceptance is a no-op)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sutra.consult.content import MessageType, SystemContent, SystemEvent
from sutra.consult.errors import ConsultError, ErrorCode, consult_operation, persistence_failure
from sutra.consult.identity import CallerIdentity
from sutra.consult.permissions import SessionAccessChecker
from sutra.consult.records import (
    Doctor,
    HealthSnapshot,
    Message,
    ParticipantRole,
    ReferralStatus,
    SenderType,
    Session,
    SessionParticipant,
    SessionStatus,
    _now,
)
from sutra.consult.referrals import normalise_referral_code
from sutra.consult.store import ConsultStore, StoreError

logger = logging.getLogger("consult.lifecycle")


@dataclass
class JoinOutcome:
    """Result of admitting a doctor to a session."""

    session_id: str
    doctor_id: str
    joined: bool  # False when the doctor was already in (or the referral already used)
    via_referral: bool = False
    referral_id: Optional[str] = None


class AccessOutcome(str, Enum):
    PATIENT = "patient"
    PARTICIPANT = "participant"
    ADMITTED_BY_REFERRAL = "admitted_by_referral"
    NEEDS_DOCTOR_PROFILE = "needs_doctor_profile"
    NO_SESSION = "no_session"


@dataclass
class AccessDecision:
    outcome: AccessOutcome
    session: Optional[Session] = None
    doctor_id: Optional[str] = None
    reason: str = ""

    @property
    def granted(self) -> bool:
        return self.outcome in (
            AccessOutcome.PATIENT,
            AccessOutcome.PARTICIPANT,
            AccessOutcome.ADMITTED_BY_REFERRAL,
        )


class SessionLifecycleManager:
    def __init__(self, store: ConsultStore, access_checker: SessionAccessChecker) -> None:
        self._store = store
        self._access = access_checker

    # ── Public API ──

    @consult_operation("create_session")
    async def create_session(
        self, caller: Optional[CallerIdentity], patient_id: str, doctor_id: str
    ) -> str:
        """
        Open a new active session between a patient and the calling doctor.

        Captures the health snapshot, adds the doctor as the primary
        participant and posts a ``session_created`` system message.
        Returns the new session id.
        """
        doctor = self._require_doctor(caller, doctor_id)

        patient = self._store.get("users", patient_id)
        if patient is None:
            raise ConsultError(ErrorCode.PATIENT_NOT_FOUND)

        try:
            session = self._store.insert("sessions", Session(
                patient_id=patient_id,
                created_by_doctor_id=doctor_id,
                status=SessionStatus.ACTIVE,
                health_snapshot=HealthSnapshot.from_patient(patient),
            ))
        except StoreError as e:
            logger.error("Session insert failed (patient=%s, doctor=%s): %s", patient_id, doctor_id, e)
            raise persistence_failure("create session") from e

        try:
            self._store.insert("session_participants", SessionParticipant(
                session_id=session.id,
                doctor_id=doctor_id,
                role=ParticipantRole.PRIMARY,
            ))
        except StoreError as e:
            # Session already exists; carry on without the participant row
            logger.error(
                "Primary participant insert failed (session=%s, doctor=%s): %s",
                session.id, doctor_id, e,
            )

        self._post_system_message(session.id, SystemContent(
            event=SystemEvent.SESSION_CREATED,
            actor_name=doctor.display_name or "Doctor",
            metadata={"doctor_id": doctor_id, "patient_id": patient_id},
        ))

        logger.info("Session %s created for patient %s by doctor %s", session.id, patient_id, doctor_id)
        return session.id

    @consult_operation("add_doctor_to_session")
    async def add_doctor_to_session(
        self,
        caller: Optional[CallerIdentity],
        session_id: str,
        doctor_id: str,
        referral_code: Optional[str] = None,
    ) -> JoinOutcome:
        """
        Admit the calling doctor as a ``referred`` participant.

        With a referral code, the code must belong to this session.  A code
        already accepted by another doctor returns success without changing
        anything; the accepting doctor may repeat the call to finish a join
        that failed part-way.
        Without a code, the caller's right to join must have been
        established by access determination beforehand.
        """
        return self._admit(caller, session_id, doctor_id, referral_code)

    @consult_operation("resolve_session_access")
    async def resolve_session_access(
        self,
        caller: Optional[CallerIdentity],
        session_id: str,
        referral_code: Optional[str] = None,
        patient_id: Optional[str] = None,
    ) -> AccessDecision:
        """
        Decide what a caller opening a session gets to see.

        The patient and existing participants are let in.  A doctor presenting
        a referral code for this session is admitted through the join path.
        Everyone else lands on NO_SESSION, a navigation outcome rather than
        an error.

        Referral codes are single-use.  An already-accepted code still
        resolves for the doctor who accepted it (so an interrupted join can
        be retried), but a different doctor presenting it gets NO_SESSION
        with reason ``referral_already_used``.
        """
        if caller is None:
            raise ConsultError(ErrorCode.UNAUTHORIZED)

        session = self._store.get("sessions", session_id)
        if session is None:
            return AccessDecision(AccessOutcome.NO_SESSION, reason="session_not_found")
        if patient_id is not None and session.patient_id != patient_id:
            # Scanned URL names a different patient than the session belongs to
            return AccessDecision(AccessOutcome.NO_SESSION, reason="patient_mismatch")

        if self._access.check_patient(caller, session).allowed:
            return AccessDecision(AccessOutcome.PATIENT, session=session)

        viewer = self._access.check_viewer(caller, session)
        if viewer.allowed:
            return AccessDecision(AccessOutcome.PARTICIPANT, session=session, doctor_id=viewer.doctor_id)

        code = normalise_referral_code(referral_code or "")
        if not code:
            return AccessDecision(AccessOutcome.NO_SESSION, reason="not_a_member")

        doctor = self._store.maybe_single("doctors", anonymous_id=caller.id)
        if doctor is None:
            return AccessDecision(AccessOutcome.NEEDS_DOCTOR_PROFILE, reason="no_doctor_profile")

        try:
            self._admit(caller, session_id, doctor.id, code)
        except ConsultError as e:
            if e.code == ErrorCode.INVALID_REFERRAL_CODE:
                return AccessDecision(AccessOutcome.NO_SESSION, reason="invalid_referral_code")
            raise

        # A code accepted earlier by someone else admits nobody new
        if self._access.check_doctor_participant(caller, session_id, doctor.id).allowed:
            return AccessDecision(AccessOutcome.ADMITTED_BY_REFERRAL, session=session, doctor_id=doctor.id)
        return AccessDecision(AccessOutcome.NO_SESSION, reason="referral_already_used")

    @consult_operation("close_session")
    async def close_session(
        self, session_id: str, closed_by: str, reason: Optional[str] = None
    ) -> Session:
        """
        Administrative active → closed transition.

        Never triggered by the core itself.  Closing a closed session is a
        no-op that posts no second message.
        """
        session = self._store.get("sessions", session_id)
        if session is None:
            raise ConsultError(ErrorCode.SESSION_NOT_FOUND)
        if session.status == SessionStatus.CLOSED:
            return session

        try:
            session = self._store.update("sessions", session_id, {
                "status": SessionStatus.CLOSED,
                "updated_at": _now(),
            })
        except StoreError as e:
            logger.error("Session close failed (session=%s): %s", session_id, e)
            raise persistence_failure("close session") from e

        metadata = {"reason": reason} if reason else {}
        self._post_system_message(session_id, SystemContent(
            event=SystemEvent.SESSION_CLOSED,
            actor_name=closed_by,
            metadata=metadata,
        ))
        logger.info("Session %s closed by %s", session_id, closed_by)
        return session

    # ── Internal ──

    def _require_doctor(self, caller: Optional[CallerIdentity], doctor_id: str) -> Doctor:
        if caller is None:
            raise ConsultError(ErrorCode.UNAUTHORIZED)
        if not self._access.check_doctor_identity(caller, doctor_id).allowed:
            raise ConsultError(ErrorCode.INVALID_DOCTOR)
        return self._store.get("doctors", doctor_id)

    def _admit(
        self,
        caller: Optional[CallerIdentity],
        session_id: str,
        doctor_id: str,
        referral_code: Optional[str],
    ) -> JoinOutcome:
        doctor = self._require_doctor(caller, doctor_id)

        if self._store.get("sessions", session_id) is None:
            raise ConsultError(ErrorCode.SESSION_NOT_FOUND)

        code = normalise_referral_code(referral_code or "")
        referral_id = None
        if code:
            referral = self._store.maybe_single("referrals", referral_code=code, session_id=session_id)
            if referral is None:
                raise ConsultError(ErrorCode.INVALID_REFERRAL_CODE)
            referral_id = referral.id

            # Accepted by this same doctor falls through, so a join whose
            # participant insert failed can be retried
            if referral.status != ReferralStatus.ACCEPTED:
                try:
                    self._store.update("referrals", referral.id, {
                        "status": ReferralStatus.ACCEPTED,
                        "accepted_by_doctor_id": doctor_id,
                        "accepted_at": _now(),
                    })
                except StoreError as e:
                    logger.error("Referral accept failed (referral=%s, doctor=%s): %s", referral.id, doctor_id, e)
                    raise persistence_failure("accept referral") from e
                logger.info("Referral %s accepted by doctor %s", code, doctor_id)
            elif referral.accepted_by_doctor_id != doctor_id:
                logger.info("Referral %s already accepted by another doctor, join is a no-op", code)
                return JoinOutcome(
                    session_id=session_id, doctor_id=doctor_id, joined=False,
                    via_referral=True, referral_id=referral_id,
                )

        existing = self._store.maybe_single(
            "session_participants", session_id=session_id, doctor_id=doctor_id
        )
        if existing is not None:
            return JoinOutcome(
                session_id=session_id, doctor_id=doctor_id, joined=False,
                via_referral=bool(code), referral_id=referral_id,
            )

        try:
            self._store.insert("session_participants", SessionParticipant(
                session_id=session_id,
                doctor_id=doctor_id,
                role=ParticipantRole.REFERRED,
            ))
        except StoreError as e:
            logger.error("Participant insert failed (session=%s, doctor=%s): %s", session_id, doctor_id, e)
            raise persistence_failure("join session") from e

        self._post_system_message(session_id, SystemContent(
            event=SystemEvent.DOCTOR_JOINED,
            actor_name=doctor.display_name or "Doctor",
            metadata={"doctor_id": doctor_id, "via_referral": bool(code)},
        ))
        logger.info("Doctor %s joined session %s (referral=%s)", doctor_id, session_id, code or "-")
        return JoinOutcome(
            session_id=session_id, doctor_id=doctor_id, joined=True,
            via_referral=bool(code), referral_id=referral_id,
        )

    def _post_system_message(self, session_id: str, content: SystemContent) -> Optional[Message]:
        try:
            return self._store.insert("messages", Message(
                session_id=session_id,
                sender_type=SenderType.SYSTEM,
                message_type=MessageType.SYSTEM,
                content=content,
            ))
        except StoreError as e:
            logger.error(
                "System message '%s' insert failed (session=%s): %s",
                content.event.value, session_id, e,
            )
            return None
