from __future__ import annotations

import hashlib
import re
import secrets
from datetime import datetime
from typing import Callable

from flask import current_app
from sqlalchemy import exists, false, insert, or_, select, update
from sqlalchemy.exc import IntegrityError

from ..common.errors import AlreadyRevoked, NotFound, NotOwner, TokenSpaceExhausted, store_operation
from ..extensions import db
from ..models import IssuedToken, ShareLink, utc_now
from .decisions import lifecycle_denial
from .ownership import expiry_for, require_owned_file, validate_ttl


TokenGenerator = Callable[[], str]

# Anything outside the token_urlsafe alphabet cannot have been minted here.
TOKEN_PATTERN = re.compile(r"[A-Za-z0-9_-]{16,128}")


def default_token_generator() -> str:
    return secrets.token_urlsafe(current_app.config["SHARE_TOKEN_BYTES"])


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _insert_link(token: str, file_id: int, creator_id: int, now: datetime, expires_at: datetime | None) -> ShareLink | None:
    link = ShareLink(
        token=token,
        file_id=file_id,
        creator_id=creator_id,
        created_at=now,
        expires_at=expires_at,
        revoked=False,
    )
    try:
        with db.session.begin_nested():
            db.session.execute(insert(IssuedToken).values(digest=token_digest(token), issued_at=now))
            db.session.add(link)
            db.session.flush()
    except IntegrityError:
        if not _token_taken(token):
            raise
        return None
    return link


def _token_taken(token: str) -> bool:
    statement = select(
        or_(
            exists().where(IssuedToken.digest == token_digest(token)),
            exists().where(ShareLink.token == token),
        )
    )
    return bool(db.session.execute(statement).scalar())


@store_operation
def mint_token(
    file_id: int,
    creator_id: int,
    ttl: int,
    *,
    now: datetime | None = None,
    generator: TokenGenerator | None = None,
) -> ShareLink:
    """Mint a new share link for ``file_id``.

    Every token ever issued is registered in ``issued_tokens`` inside the
    same savepoint as the link, so a repeat value fails the insert and a
    fresh one is drawn. After ``TOKEN_MINT_MAX_ATTEMPTS`` failures the
    random source is presumed broken.
    """
    now = now or utc_now()
    file = require_owned_file(file_id, creator_id)
    validate_ttl(ttl)
    generator = generator or default_token_generator
    expires_at = expiry_for(ttl, now)

    attempts = current_app.config["TOKEN_MINT_MAX_ATTEMPTS"]
    for attempt in range(1, attempts + 1):
        link = _insert_link(generator(), file.id, creator_id, now, expires_at)
        if link is not None:
            return link
        current_app.logger.warning("Share token collision for file_id=%s (attempt %s/%s)", file.id, attempt, attempts)

    current_app.logger.error(
        "Token space exhausted for file_id=%s after %s attempts; the random source is suspect", file.id, attempts
    )
    raise TokenSpaceExhausted()


@store_operation
def resolve_token(token: str | None) -> ShareLink | None:
    if not isinstance(token, str) or not TOKEN_PATTERN.fullmatch(token):
        return None
    return ShareLink.query.filter(ShareLink.token == token).one_or_none()


@store_operation
def revoke_token(token: str, requester_id: int, *, now: datetime | None = None) -> ShareLink:
    """Mark a share link revoked.

    Strict rather than idempotent: a second revoke raises ``AlreadyRevoked``,
    mirroring ``revoke_user_grant`` where a second call finds nothing.
    """
    now = now or utc_now()
    link = resolve_token(token)
    if link is None:
        raise NotFound("Share link not found.")
    if link.creator_id != requester_id:
        raise NotOwner("Only the creator of a share link can revoke it.")

    result = db.session.execute(
        update(ShareLink)
        .where(ShareLink.id == link.id, ShareLink.revoked == false())
        .values(revoked=True, revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise AlreadyRevoked()
    db.session.refresh(link)
    return link


@store_operation
def list_tokens(file_id: int) -> list[ShareLink]:
    return (
        ShareLink.query.filter_by(file_id=file_id)
        .order_by(ShareLink.created_at.desc(), ShareLink.id.desc())
        .all()
    )


def link_status(link: ShareLink, now: datetime) -> str:
    reason = lifecycle_denial(revoked=link.revoked, expires_at=link.expires_at, now=now)
    return reason.value if reason is not None else "active"
