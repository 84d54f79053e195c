"""
Consult Errors — taxonomy and the typed result every core operation returns.

Operations raise ``ConsultError`` internally.  ``consult_operation`` turns
that (and any store failure) into a ``ConsultResult`` so nothing is thrown
across the core/presentation boundary.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sutra.consult.store import StoreError

logger = logging.getLogger("consult.errors")


class ErrorCode(str, Enum):
    UNAUTHORIZED = "unauthorized"
    INVALID_DOCTOR = "invalid_doctor"
    PATIENT_NOT_FOUND = "patient_not_found"
    SESSION_NOT_FOUND = "session_not_found"
    INVALID_REFERRAL_CODE = "invalid_referral_code"
    PERSISTENCE_FAILURE = "persistence_failure"


NOT_FOUND_CODES = {ErrorCode.PATIENT_NOT_FOUND, ErrorCode.SESSION_NOT_FOUND}

_DEFAULT_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.UNAUTHORIZED: "Unauthorized",
    ErrorCode.INVALID_DOCTOR: "Invalid doctor",
    ErrorCode.PATIENT_NOT_FOUND: "Patient not found",
    ErrorCode.SESSION_NOT_FOUND: "Session not found",
    ErrorCode.INVALID_REFERRAL_CODE: "Invalid referral code",
    ErrorCode.PERSISTENCE_FAILURE: "Something went wrong. Please try again.",
}


class ConsultError(Exception):
    """A typed, user-presentable failure of a core operation."""

    def __init__(self, code: ErrorCode, message: str | None = None) -> None:
        self.code = code
        self.message = message or _DEFAULT_MESSAGES[code]
        super().__init__(f"{code.value}: {self.message}")


def persistence_failure(action: str) -> ConsultError:
    """Generic retry prompt — never carries store internals."""
    return ConsultError(
        ErrorCode.PERSISTENCE_FAILURE,
        f"Failed to {action}. Please try again.",
    )


@dataclass
class ConsultResult:
    """Outcome of a core operation: either ``value`` or ``error``."""

    value: Any = None
    error: ErrorCode | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_not_found(self) -> bool:
        return self.error in NOT_FOUND_CODES

    @classmethod
    def success(cls, value: Any = None) -> ConsultResult:
        return cls(value=value)

    @classmethod
    def failure(cls, error: ConsultError) -> ConsultResult:
        return cls(error=error.code, message=error.message)


def consult_operation(name: str):
    """
    Wrap an async core operation so it always returns a ConsultResult.

    Store errors that escaped the operation's own handling are logged with
    the operation name and its arguments (entity ids), then surfaced as a
    generic persistence failure.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> ConsultResult:
            try:
                value = await func(*args, **kwargs)
            except ConsultError as exc:
                logger.info("%s rejected: %s", name, exc)
                return ConsultResult.failure(exc)
            except StoreError as exc:
                logger.error(
                    "%s failed on store access (args=%s, kwargs=%s): %s",
                    name, _ids(args[1:]), _ids(kwargs), exc,
                )
                return ConsultResult.failure(persistence_failure("complete the request"))
            return ConsultResult.success(value)

        return wrapper

    return decorator


def _ids(values) -> Any:
    """Keep only plain scalar arguments (ids, codes) for log context."""
    if isinstance(values, dict):
        return {k: v for k, v in values.items() if isinstance(v, (str, int)) or v is None}
    return [v for v in values if isinstance(v, (str, int))]
