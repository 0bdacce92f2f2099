from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from ..common.errors import InvalidTTL, NotFound, NotOwner
from ..extensions import db
from ..models import File


def get_live_file(file_id: int) -> File | None:
    file = db.session.get(File, file_id)
    if file is None or file.is_deleted:
        return None
    return file


def require_owned_file(file_id: int, user_id: int) -> File:
    """Load a file for a mutating call made by ``user_id``.

    Owners already know the file exists, so the two failures stay distinct.
    """
    file = get_live_file(file_id)
    if file is None:
        raise NotFound("File not found.")
    if file.owner_id != user_id:
        raise NotOwner()
    return file


def validate_ttl(ttl: int) -> int:
    if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl < 0:
        raise InvalidTTL()
    max_ttl = current_app.config["MAX_SHARE_TTL_SECONDS"]
    if ttl > max_ttl:
        raise InvalidTTL(f"ttl_seconds must be at most {max_ttl}.")
    return ttl


def expiry_for(ttl: int, now: datetime) -> datetime | None:
    return None if ttl == 0 else now + timedelta(seconds=ttl)
