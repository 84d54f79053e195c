"""
Tests for the consult error taxonomy and the operation wrapper.
"""

import pytest

from sutra.consult.errors import (
    ConsultError,
    ConsultResult,
    ErrorCode,
    consult_operation,
    persistence_failure,
)
from sutra.consult.store import StoreWriteError


class _Service:
    @consult_operation("do_thing")
    async def do_thing(self, session_id, fail_with=None):
        if fail_with is not None:
            raise fail_with
        return {"session_id": session_id}


@pytest.mark.asyncio
async def test_success_wraps_value():
    result = await _Service().do_thing("s1")
    assert result.ok
    assert result.value == {"session_id": "s1"}


@pytest.mark.asyncio
async def test_consult_error_becomes_failure():
    result = await _Service().do_thing("s1", fail_with=ConsultError(ErrorCode.SESSION_NOT_FOUND))
    assert not result.ok
    assert result.error == ErrorCode.SESSION_NOT_FOUND
    assert result.message == "Session not found"
    assert result.is_not_found


@pytest.mark.asyncio
async def test_escaped_store_error_is_generic(caplog):
    with caplog.at_level("ERROR", logger="consult.errors"):
        result = await _Service().do_thing("s1", fail_with=StoreWriteError("row lock timeout on users"))

    assert result.error == ErrorCode.PERSISTENCE_FAILURE
    assert "row lock" not in result.message
    assert "do_thing" in caplog.text
    assert "s1" in caplog.text


@pytest.mark.asyncio
async def test_other_exceptions_propagate():
    with pytest.raises(KeyError):
        await _Service().do_thing("s1", fail_with=KeyError("bug"))


def test_persistence_failure_message():
    err = persistence_failure("create referral")
    assert err.code == ErrorCode.PERSISTENCE_FAILURE
    assert err.message == "Failed to create referral. Please try again."


def test_custom_message_kept():
    err = ConsultError(ErrorCode.INVALID_DOCTOR, "Display name is required")
    result = ConsultResult.failure(err)
    assert result.message == "Display name is required"
    assert not result.is_not_found
