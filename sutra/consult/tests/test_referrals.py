"""
Tests for referral issuance and redemption URLs.
"""

import re

import pytest

from sutra.consult.content import MessageType
from sutra.consult.errors import ErrorCode
from sutra.consult.records import Referral, ReferralStatus
from sutra.consult.referrals import (
    CODE_LENGTH,
    MAX_CODE_ATTEMPTS,
    ReferralIssuer,
    build_redemption_url,
    generate_referral_code,
    normalise_referral_code,
    parse_redemption_url,
)


class TestCodes:
    def test_generated_code_format(self):
        for _ in range(50):
            assert re.fullmatch(r"[A-Z0-9]{6}", generate_referral_code())
        assert CODE_LENGTH == 6

    def test_normalise(self):
        assert normalise_referral_code(" ab12cd ") == "AB12CD"
        assert normalise_referral_code("") == ""


class TestRedemptionUrl:
    def test_build(self):
        url = build_redemption_url("https://sutra.test/", "p1", "s1", "AB12CD")
        assert url == "https://sutra.test/p1/s1?ref=AB12CD"

    def test_parse(self):
        link = parse_redemption_url("https://sutra.test/p1/s1?ref=ab12cd")
        assert link.patient_id == "p1"
        assert link.session_id == "s1"
        assert link.referral_code == "AB12CD"

    def test_parse_without_code(self):
        link = parse_redemption_url("https://sutra.test/p1/s1")
        assert link.referral_code is None

    def test_parse_uses_last_two_segments(self):
        link = parse_redemption_url("https://sutra.test/app/session/p1/s1?ref=X1Y2Z3")
        assert (link.patient_id, link.session_id) == ("p1", "s1")

    @pytest.mark.parametrize("url", ["", "https://sutra.test/", "https://sutra.test/only-one"])
    def test_parse_rejects_short_paths(self, url):
        with pytest.raises(ValueError):
            parse_redemption_url(url)


class TestCreateReferral:

    @pytest.mark.asyncio
    async def test_creates_pending_referral_and_message(self, store, open_session, mint_referral, patient, doctor, app_base_url):
        session_id = await open_session()
        message = await mint_referral(session_id, "Cardiology", notes="Irregular ECG")

        assert message.message_type == MessageType.REFERRAL
        assert message.sender_id == doctor.id

        content = message.content
        referral = store.get("referrals", content.referral_id)
        assert referral.status == ReferralStatus.PENDING
        assert referral.session_id == session_id
        assert referral.created_by_doctor_id == doctor.id
        assert referral.referral_code == content.referral_code
        assert referral.notes == "Irregular ECG"
        assert content.target_specialty == "Cardiology"
        assert content.qr_data == f"{app_base_url}/{patient.id}/{session_id}?ref={content.referral_code}"

    @pytest.mark.asyncio
    async def test_non_participant_cannot_refer(self, services, open_session, second_doctor, second_doctor_caller):
        session_id = await open_session()
        result = await services.referrals.create_referral(
            second_doctor_caller, session_id, second_doctor.id, "Cardiology",
        )
        assert result.error == ErrorCode.UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_participant_id_with_wrong_caller(self, services, open_session, doctor, second_doctor_caller):
        session_id = await open_session()
        result = await services.referrals.create_referral(second_doctor_caller, session_id, doctor.id, "Cardiology")
        assert result.error == ErrorCode.UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_no_caller(self, services, open_session, doctor):
        session_id = await open_session()
        result = await services.referrals.create_referral(None, session_id, doctor.id, "Cardiology")
        assert result.error == ErrorCode.UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_collision_regenerates(self, store, services, open_session, doctor, doctor_caller, app_base_url):
        session_id = await open_session()
        store.insert("referrals", Referral(session_id="other", referral_code="TAKEN1"))
        codes = iter(["taken1", "FRESH2"])
        issuer = ReferralIssuer(store, services.access, base_url=app_base_url, code_factory=lambda: next(codes))

        result = await issuer.create_referral(doctor_caller, session_id, doctor.id, "Dermatology")

        assert result.ok
        assert result.value.content.referral_code == "FRESH2"

    @pytest.mark.asyncio
    async def test_collisions_exhausted(self, store, services, open_session, doctor, doctor_caller, app_base_url):
        session_id = await open_session()
        store.insert("referrals", Referral(session_id="other", referral_code="TAKEN1"))
        issuer = ReferralIssuer(store, services.access, base_url=app_base_url, code_factory=lambda: "TAKEN1")

        result = await issuer.create_referral(doctor_caller, session_id, doctor.id, "Dermatology")

        assert result.error == ErrorCode.PERSISTENCE_FAILURE
        assert len(store.select("referrals", referral_code="TAKEN1")) == 1
        assert MAX_CODE_ATTEMPTS == 5
