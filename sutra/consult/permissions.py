"""
Session Access Checker — validates the caller against session membership.

Rules:
  - A patient may act in a session only if they are its patient.
  - A doctor may act in a session only as a participant whose linked
    identity equals the caller (join-then-compare; the client-supplied
    doctor id alone is never trusted).
  - A doctor record may only be used by the identity it is linked to.
  - No caller at all is always denied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sutra.consult.identity import CallerIdentity
from sutra.consult.records import Session
from sutra.consult.store import ConsultStore

logger = logging.getLogger("consult.permissions")

AUDIT_LOG_MAX = 500


@dataclass
class PermissionResult:
    """Outcome of a permission check."""

    allowed: bool
    reason: str = ""
    doctor_id: Optional[str] = None


class SessionAccessChecker:
    """
    Membership checks for the session core.

    Maintains a bounded audit log of every check.
    """

    def __init__(self, store: ConsultStore) -> None:
        self._store = store
        self._audit_log: list[dict] = []

    # ── Checks ──

    def check_patient(self, caller: Optional[CallerIdentity], session: Session) -> PermissionResult:
        if caller is None:
            result = PermissionResult(allowed=False, reason="no_caller")
        elif caller.id == session.patient_id:
            result = PermissionResult(allowed=True, reason="session_patient")
        else:
            result = PermissionResult(allowed=False, reason="not_session_patient")
        self._audit("patient", caller, session.id, session.patient_id, result)
        return result

    def check_doctor_participant(
        self, caller: Optional[CallerIdentity], session_id: str, doctor_id: str
    ) -> PermissionResult:
        if caller is None:
            result = PermissionResult(allowed=False, reason="no_caller")
        else:
            linked = self._store.get_participant_identity(session_id, doctor_id)
            if linked is None:
                result = PermissionResult(allowed=False, reason="not_a_participant")
            elif linked != caller.id:
                result = PermissionResult(allowed=False, reason="identity_mismatch")
            else:
                result = PermissionResult(allowed=True, reason="participant", doctor_id=doctor_id)
        self._audit("doctor_participant", caller, session_id, doctor_id, result)
        return result

    def check_doctor_identity(
        self, caller: Optional[CallerIdentity], doctor_id: str
    ) -> PermissionResult:
        """The caller must be the identity the doctor record is linked to."""
        if caller is None:
            result = PermissionResult(allowed=False, reason="no_caller")
        else:
            doctor = self._store.get("doctors", doctor_id)
            if doctor is None:
                result = PermissionResult(allowed=False, reason="unknown_doctor")
            elif doctor.anonymous_id != caller.id:
                result = PermissionResult(allowed=False, reason="doctor_identity_mismatch")
            else:
                result = PermissionResult(allowed=True, reason="linked_identity", doctor_id=doctor_id)
        self._audit("doctor_identity", caller, None, doctor_id, result)
        return result

    def check_viewer(self, caller: Optional[CallerIdentity], session: Session) -> PermissionResult:
        """May the caller read this session: its patient, or a linked participant doctor."""
        if caller is not None and caller.id == session.patient_id:
            result = PermissionResult(allowed=True, reason="session_patient")
            self._audit("viewer", caller, session.id, session.patient_id, result)
            return result

        result = PermissionResult(allowed=False, reason="no_caller" if caller is None else "not_a_member")
        if caller is not None:
            for doctor in self._store.select("doctors", anonymous_id=caller.id):
                participant = self._store.maybe_single(
                    "session_participants", session_id=session.id, doctor_id=doctor.id
                )
                if participant is not None:
                    result = PermissionResult(allowed=True, reason="participant", doctor_id=doctor.id)
                    break
        self._audit("viewer", caller, session.id, result.doctor_id, result)
        return result

    # ── Audit ──

    def _audit(
        self,
        check: str,
        caller: Optional[CallerIdentity],
        session_id: Optional[str],
        subject_id: Optional[str],
        result: PermissionResult,
    ) -> None:
        """Record every permission check for audit trail."""
        caller_id = caller.id if caller else None
        entry = {
            "check": check,
            "caller_id": caller_id,
            "session_id": session_id,
            "subject_id": subject_id,
            "allowed": result.allowed,
            "reason": result.reason,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self._audit_log.append(entry)
        # Keep audit log bounded
        if len(self._audit_log) > AUDIT_LOG_MAX:
            self._audit_log = self._audit_log[-(AUDIT_LOG_MAX // 2):]

        level = logging.DEBUG if result.allowed else logging.WARNING
        logger.log(
            level,
            "Permission %s: %s → %s for session %s [subject=%s, reason=%s]",
            "GRANTED" if result.allowed else "DENIED",
            caller_id,
            check,
            session_id,
            subject_id,
            result.reason,
        )

    @property
    def audit_log(self) -> list[dict]:
        """Access the audit log for inspection/export."""
        return list(self._audit_log)
