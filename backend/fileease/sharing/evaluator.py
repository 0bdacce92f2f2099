"""Access decisions for every file read.

Both entry points read the clock once and hand the same ``now`` to every
time-dependent check. They only read state; nothing here is cached, so a
revoke committed before an evaluation starts is always observed.
"""

from __future__ import annotations

from datetime import datetime

from ..common.errors import store_operation
from ..models import utc_now
from .decisions import AccessDecision, DenyReason, lifecycle_denial
from .grants import active_user_grant
from .ownership import get_live_file
from .tokens import resolve_token


@store_operation
def evaluate_as_user(file_id: int, principal_user_id: int | None, now: datetime | None = None) -> AccessDecision:
    now = now or utc_now()
    file = get_live_file(file_id)
    if file is None:
        return AccessDecision.deny(DenyReason.NOT_FOUND)

    if principal_user_id is not None and file.owner_id == principal_user_id:
        return AccessDecision.allow(file)

    grant = active_user_grant(file.id, principal_user_id, now)
    if grant is not None:
        return AccessDecision.allow(file, grant)
    return AccessDecision.deny(DenyReason.UNAUTHORIZED, file)


@store_operation
def evaluate_by_token(token: str | None, now: datetime | None = None) -> AccessDecision:
    now = now or utc_now()
    link = resolve_token(token)
    if link is None:
        return AccessDecision.deny(DenyReason.NOT_FOUND)

    reason = lifecycle_denial(revoked=link.revoked, expires_at=link.expires_at, now=now)
    if reason is not None:
        return AccessDecision.deny(reason, link.file)

    file = get_live_file(link.file_id)
    if file is None:
        return AccessDecision.deny(DenyReason.NOT_FOUND)
    return AccessDecision.allow(file, link)
