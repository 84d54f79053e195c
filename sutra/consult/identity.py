"""
Caller identity.

Authentication happens upstream; every core operation receives the
verified caller as an explicit ``CallerIdentity`` value.  Anonymous
identities belong to doctors, non-anonymous ones to patients.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping, Optional

from sutra import settings

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class CallerIdentity:
    id: str
    is_anonymous: bool = False


class IdentityProvider(ABC):
    """Collaborator contract: who is making the current request."""

    @abstractmethod
    def get_current_user(self) -> Optional[CallerIdentity]:
        ...


class HeaderIdentityProvider(IdentityProvider):
    """Reads the identity the upstream provider stamped onto request headers."""

    def __init__(
        self,
        headers: Mapping[str, str],
        id_header: str = settings.IDENTITY_HEADER,
        anonymous_header: str = settings.ANONYMOUS_HEADER,
    ) -> None:
        self._headers = headers
        self._id_header = id_header
        self._anonymous_header = anonymous_header

    def get_current_user(self) -> Optional[CallerIdentity]:
        user_id = (self._headers.get(self._id_header) or "").strip()
        if not user_id:
            return None
        anonymous = (self._headers.get(self._anonymous_header) or "").strip().lower()
        return CallerIdentity(id=user_id, is_anonymous=anonymous in _TRUTHY)
