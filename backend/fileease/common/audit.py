from __future__ import annotations

from typing import Any

from flask import current_app, has_request_context, request
from sqlalchemy.exc import OperationalError, ProgrammingError

from ..extensions import db
from ..models import AuditLog


def _request_actor_ip() -> str | None:
    if not has_request_context():
        return None
    forwarded = request.headers.get("X-Forwarded-For") or ""
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    return request.remote_addr or None


def audit(
    action: str,
    actor_id: int | None = None,
    target_type: str | None = None,
    target_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> AuditLog | None:
    payload = dict(details or {})
    actor_ip = _request_actor_ip()
    if actor_ip:
        payload.setdefault("ip", actor_ip)

    entry = AuditLog(
        actor_user_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=payload,
    )
    # Audit must never break the primary action (share, revoke, download).
    try:
        with db.session.begin_nested():
            db.session.add(entry)
            db.session.flush([entry])
    except (OperationalError, ProgrammingError):
        current_app.logger.warning("Audit entry %s could not be written", action, exc_info=True)
        return None

    return entry


def file_activity(file_id: int, limit: int = 100) -> list[AuditLog]:
    return (
        AuditLog.query.filter_by(target_type="file", target_id=str(file_id))
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )
