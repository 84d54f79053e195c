"""
Tests for the Session Access Checker.

Covers:
  - Patient checks
  - Doctor participant join-then-compare checks
  - Doctor identity linkage
  - Viewer checks
  - Audit log
"""

import pytest

from sutra.consult.identity import CallerIdentity
from sutra.consult.permissions import AUDIT_LOG_MAX, SessionAccessChecker
from sutra.consult.records import ParticipantRole, Session, SessionParticipant


@pytest.fixture
def checker(store):
    return SessionAccessChecker(store)


@pytest.fixture
def session(store, patient, doctor):
    s = store.insert("sessions", Session(patient_id=patient.id, created_by_doctor_id=doctor.id))
    store.insert("session_participants", SessionParticipant(
        session_id=s.id, doctor_id=doctor.id, role=ParticipantRole.PRIMARY,
    ))
    return s


# ── Patient ──


class TestPatientCheck:
    def test_session_patient_allowed(self, checker, session, patient_caller):
        result = checker.check_patient(patient_caller, session)
        assert result.allowed is True
        assert result.reason == "session_patient"

    def test_other_patient_denied(self, checker, session):
        result = checker.check_patient(CallerIdentity(id="someone-else"), session)
        assert result.allowed is False
        assert result.reason == "not_session_patient"

    def test_no_caller_denied(self, checker, session):
        assert checker.check_patient(None, session).reason == "no_caller"


# ── Doctor participant ──


class TestDoctorParticipantCheck:
    def test_linked_participant_allowed(self, checker, session, doctor, doctor_caller):
        result = checker.check_doctor_participant(doctor_caller, session.id, doctor.id)
        assert result.allowed is True
        assert result.doctor_id == doctor.id

    def test_valid_participant_wrong_caller(self, checker, session, doctor, second_doctor_caller):
        """doctor-D is a real participant, but the caller is someone else."""
        result = checker.check_doctor_participant(second_doctor_caller, session.id, doctor.id)
        assert result.allowed is False
        assert result.reason == "identity_mismatch"

    def test_not_a_participant(self, checker, session, second_doctor, second_doctor_caller):
        result = checker.check_doctor_participant(second_doctor_caller, session.id, second_doctor.id)
        assert result.allowed is False
        assert result.reason == "not_a_participant"

    def test_patient_cannot_pose_as_doctor(self, checker, session, doctor, patient_caller):
        assert checker.check_doctor_participant(patient_caller, session.id, doctor.id).allowed is False


# ── Doctor identity ──


class TestDoctorIdentityCheck:
    def test_linked(self, checker, doctor, doctor_caller):
        assert checker.check_doctor_identity(doctor_caller, doctor.id).allowed is True

    def test_mismatch(self, checker, doctor, second_doctor_caller):
        result = checker.check_doctor_identity(second_doctor_caller, doctor.id)
        assert result.reason == "doctor_identity_mismatch"

    def test_unknown_doctor(self, checker, doctor_caller):
        assert checker.check_doctor_identity(doctor_caller, "ghost").reason == "unknown_doctor"


# ── Viewer ──


class TestViewerCheck:
    def test_patient_can_view(self, checker, session, patient_caller):
        assert checker.check_viewer(patient_caller, session).allowed is True

    def test_participant_can_view(self, checker, session, doctor, doctor_caller):
        result = checker.check_viewer(doctor_caller, session)
        assert result.allowed is True
        assert result.doctor_id == doctor.id

    def test_outsider_cannot_view(self, checker, session, second_doctor, second_doctor_caller):
        result = checker.check_viewer(second_doctor_caller, session)
        assert result.allowed is False
        assert result.reason == "not_a_member"


# ── Audit ──


class TestAuditLog:
    def test_every_check_recorded(self, checker, session, patient_caller, second_doctor_caller, doctor):
        checker.check_patient(patient_caller, session)
        checker.check_doctor_participant(second_doctor_caller, session.id, doctor.id)
        log = checker.audit_log
        assert [e["allowed"] for e in log] == [True, False]
        assert log[1]["reason"] == "identity_mismatch"
        assert log[1]["caller_id"] == "anon-e"

    def test_audit_log_bounded(self, checker, session, patient_caller):
        for _ in range(AUDIT_LOG_MAX + 1):
            checker.check_patient(patient_caller, session)
        assert len(checker.audit_log) == AUDIT_LOG_MAX // 2

    def test_audit_log_is_a_copy(self, checker, session, patient_caller):
        checker.check_patient(patient_caller, session)
        checker.audit_log.clear()
        assert len(checker.audit_log) == 1
