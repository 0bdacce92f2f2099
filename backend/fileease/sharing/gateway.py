"""Facade the HTTP layer calls for sharing and file access.

Each public function is one unit of work: it evaluates or mutates through
the sharing modules, writes the audit entry and commits.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, BinaryIO

from flask import current_app
from sqlalchemy import func

from ..common.audit import audit, file_activity as _file_activity
from ..common.errors import AccessDenied, APIError, NotFound
from ..common.storage import get_blob_store
from ..extensions import db
from ..models import AuditLog, ShareLink, User, UserGrant, as_utc, utc_now
from . import grants, revocation, tokens
from .decisions import AccessDecision, is_live
from .evaluator import evaluate_as_user, evaluate_by_token
from .ownership import require_owned_file


@dataclass(frozen=True)
class FileMetadata:
    file_id: int
    filename: str
    size: int
    content_type: str | None
    owner_id: int
    created_at: datetime
    expires_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_id": self.file_id,
            "filename": self.filename,
            "size": self.size,
            "content_type": self.content_type,
            "owner_id": self.owner_id,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass
class FileDownload:
    metadata: FileMetadata
    stream: BinaryIO
    length: int


def _grant_expiry(decision: AccessDecision) -> datetime | None:
    if isinstance(decision.grant, (ShareLink, UserGrant)):
        return as_utc(decision.grant.expires_at)
    return None


def _metadata(decision: AccessDecision) -> FileMetadata:
    file = decision.file
    assert file is not None
    return FileMetadata(
        file_id=file.id,
        filename=file.filename,
        size=file.size,
        content_type=file.content_type,
        owner_id=file.owner_id,
        created_at=as_utc(file.created_at) or utc_now(),
        expires_at=_grant_expiry(decision),
    )


def _access_details(decision: AccessDecision, via: str) -> dict[str, Any]:
    details: dict[str, Any] = {"via": via}
    if isinstance(decision.grant, ShareLink):
        details["link_id"] = decision.grant.id
    elif isinstance(decision.grant, UserGrant):
        details["grant_id"] = decision.grant.id
    return details


def _require_allowed(decision: AccessDecision, *, via: str, actor_id: int | None = None) -> AccessDecision:
    if decision.allowed:
        return decision

    reason = decision.reason.value if decision.reason else None
    current_app.logger.debug("Access denied via %s: %s", via, reason)
    if decision.file is not None:
        # Only the owner-facing activity feed carries the precise reason.
        audit(
            action="access.denied",
            actor_id=actor_id,
            target_type="file",
            target_id=str(decision.file.id),
            details={"via": via, "reason": reason},
        )
        db.session.commit()
    raise AccessDenied(decision)


def _open_download(decision: AccessDecision, *, via: str, actor_id: int | None = None) -> FileDownload:
    file = decision.file
    assert file is not None
    store = get_blob_store()
    try:
        length = store.size(file.storage_key)
        stream = store.read(file.storage_key)
    except FileNotFoundError as error:
        current_app.logger.warning("Blob missing for file_id=%s key=%s", file.id, file.storage_key)
        raise APIError(404, "FILE_MISSING", "File data not found.") from error

    metadata = _metadata(decision)
    audit(
        action="access.download",
        actor_id=actor_id,
        target_type="file",
        target_id=str(file.id),
        details=_access_details(decision, via),
    )
    try:
        db.session.commit()
    except Exception:
        stream.close()
        raise
    return FileDownload(metadata=metadata, stream=stream, length=length)


def probe(token: str, now: datetime | None = None) -> FileMetadata:
    decision = _require_allowed(evaluate_by_token(token, now), via="link")
    return _metadata(decision)


def fetch_by_token(token: str, now: datetime | None = None) -> FileDownload:
    decision = _require_allowed(evaluate_by_token(token, now), via="link")
    return _open_download(decision, via="link")


def fetch_by_file(file_id: int, principal_user_id: int, now: datetime | None = None) -> FileDownload:
    decision = _require_allowed(evaluate_as_user(file_id, principal_user_id, now), via="user", actor_id=principal_user_id)
    return _open_download(decision, via="user", actor_id=principal_user_id)


def find_user(identifier: Any) -> User | None:
    """Look a grantee up by id, email address or username."""
    if isinstance(identifier, bool) or not isinstance(identifier, (int, str)):
        return None
    if isinstance(identifier, int):
        return db.session.get(User, identifier)

    cleaned = identifier.strip()
    if not cleaned:
        return None
    if cleaned.isascii() and cleaned.isdigit():
        return db.session.get(User, int(cleaned))
    if "@" in cleaned:
        return User.query.filter(func.lower(User.email) == cleaned.lower()).one_or_none()
    return User.query.filter(func.lower(User.username) == cleaned.lower()).one_or_none()


def share_with_user(
    file_id: int,
    owner_id: int,
    grantee: Any,
    ttl: int,
    now: datetime | None = None,
) -> tuple[UserGrant, bool]:
    require_owned_file(file_id, owner_id)
    target = find_user(grantee)
    if target is None or not target.is_active:
        raise NotFound("User not found.")

    grant, created = grants.upsert_user_grant(file_id, owner_id, target.id, ttl, now=now)
    audit(
        action="shares.user_grant",
        actor_id=owner_id,
        target_type="file",
        target_id=str(file_id),
        details={
            "grant_id": grant.id,
            "grantee_id": target.id,
            "expires_at": as_utc(grant.expires_at).isoformat() if grant.expires_at else None,
            "created": created,
        },
    )
    db.session.commit()
    return grant, created


def unshare_user(file_id: int, owner_id: int, grantee_id: int, now: datetime | None = None) -> None:
    revocation.revoke_user_grant(file_id, owner_id, grantee_id, now=now)
    audit(
        action="shares.user_revoke",
        actor_id=owner_id,
        target_type="file",
        target_id=str(file_id),
        details={"grantee_id": grantee_id},
    )
    db.session.commit()


def create_share_link(file_id: int, owner_id: int, ttl: int, now: datetime | None = None) -> ShareLink:
    link = tokens.mint_token(file_id, owner_id, ttl, now=now)
    audit(
        action="shares.link_create",
        actor_id=owner_id,
        target_type="file",
        target_id=str(file_id),
        details={"link_id": link.id, "expires_at": as_utc(link.expires_at).isoformat() if link.expires_at else None},
    )
    db.session.commit()
    return link


def revoke_share_link(token: str, requester_id: int, now: datetime | None = None) -> ShareLink:
    link = revocation.revoke_share_link(token, requester_id, now=now)
    audit(
        action="shares.link_revoke",
        actor_id=requester_id,
        target_type="file",
        target_id=str(link.file_id),
        details={"link_id": link.id},
    )
    db.session.commit()
    return link


def list_shares(file_id: int, owner_id: int, now: datetime | None = None) -> dict[str, list[dict[str, Any]]]:
    now = now or utc_now()
    file = require_owned_file(file_id, owner_id)

    grant_items = []
    for grant in grants.list_grants(file.id):
        payload = grant.to_dict()
        payload["active"] = is_live(revoked=False, expires_at=grant.expires_at, now=now)
        grant_items.append(payload)

    link_items = []
    for link in tokens.list_tokens(file.id):
        payload = link.to_dict()
        payload["status"] = tokens.link_status(link, now)
        link_items.append(payload)

    return {"grants": grant_items, "links": link_items}


def file_activity(file_id: int, owner_id: int, limit: int = 100) -> list[AuditLog]:
    require_owned_file(file_id, owner_id)
    return _file_activity(file_id, limit=limit)
