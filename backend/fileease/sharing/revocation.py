from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import and_, delete, or_, true

from ..common.errors import store_operation
from ..extensions import db
from ..models import ShareLink, UserGrant, utc_now
from .grants import revoke_user_grant
from .tokens import revoke_token


__all__ = ["purge_expired", "revoke_share_link", "revoke_user_grant"]


def revoke_share_link(token: str, requester_id: int, *, now: datetime | None = None) -> ShareLink:
    return revoke_token(token, requester_id, now=now)


@store_operation
def purge_expired(before: datetime, *, now: datetime | None = None) -> int:
    """Physically delete grants and links that stopped working before ``before``.

    ``before`` is clamped to ``now`` so a record that is still active can never
    be purged. Issued token digests are kept, so purged tokens stay retired.
    """
    now = now or utc_now()
    cutoff = min(before, now)

    grants = db.session.execute(
        delete(UserGrant)
        .where(UserGrant.expires_at.is_not(None), UserGrant.expires_at < cutoff)
        .execution_options(synchronize_session=False)
    ).rowcount
    links = db.session.execute(
        delete(ShareLink)
        .where(
            or_(
                and_(ShareLink.expires_at.is_not(None), ShareLink.expires_at < cutoff),
                and_(ShareLink.revoked == true(), ShareLink.revoked_at < cutoff),
            )
        )
        .execution_options(synchronize_session=False)
    ).rowcount
    db.session.expire_all()

    current_app.logger.info("Purged %s user grants and %s share links older than %s", grants, links, cutoff.isoformat())
    return grants + links
