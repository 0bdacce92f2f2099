from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from ..models import File, ShareLink, UserGrant, as_utc


Grant = Union[UserGrant, ShareLink]


class DenyReason(str, enum.Enum):
    NOT_FOUND = "not-found"
    EXPIRED = "expired"
    REVOKED = "revoked"
    UNAUTHORIZED = "unauthorized"


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of a single access evaluation.

    ``grant`` is the record that justified an allow: a ``UserGrant``, a
    ``ShareLink``, or ``None`` when the principal owns the file.
    """

    allowed: bool
    reason: DenyReason | None = None
    file: File | None = None
    grant: Grant | None = None

    @classmethod
    def allow(cls, file: File, grant: Grant | None = None) -> "AccessDecision":
        return cls(allowed=True, file=file, grant=grant)

    @classmethod
    def deny(cls, reason: DenyReason, file: File | None = None) -> "AccessDecision":
        # file is kept for the owner's audit trail only, never rendered.
        return cls(allowed=False, reason=reason, file=file)


def lifecycle_denial(*, revoked: bool, expires_at: datetime | None, now: datetime) -> DenyReason | None:
    """Shared revocation/expiry predicate for user grants and share links."""
    if revoked:
        return DenyReason.REVOKED
    expires_at = as_utc(expires_at)
    if expires_at is not None and now > expires_at:
        return DenyReason.EXPIRED
    return None


def is_live(*, revoked: bool, expires_at: datetime | None, now: datetime) -> bool:
    return lifecycle_denial(revoked=revoked, expires_at=expires_at, now=now) is None
