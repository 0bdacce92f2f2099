from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError

from ..common.errors import InvalidGrantee, NotFound, Unavailable, store_operation
from ..extensions import db
from ..models import User, UserGrant, utc_now
from .decisions import is_live
from .ownership import expiry_for, require_owned_file, validate_ttl


# An upsert only loses to a concurrent revoke; two rounds settle it.
_UPSERT_ROUNDS = 2


def find_user_grant(file_id: int, grantee_id: int) -> UserGrant | None:
    statement = (
        select(UserGrant)
        .where(UserGrant.file_id == file_id, UserGrant.grantee_id == grantee_id)
        .execution_options(populate_existing=True)
    )
    return db.session.execute(statement).scalar_one_or_none()


def _insert_grant(file_id: int, granter_id: int, grantee_id: int, now: datetime, expires_at: datetime | None) -> UserGrant | None:
    grant = UserGrant(
        file_id=file_id,
        grantee_id=grantee_id,
        granter_id=granter_id,
        created_at=now,
        expires_at=expires_at,
    )
    try:
        with db.session.begin_nested():
            db.session.add(grant)
            db.session.flush()
    except IntegrityError:
        return None
    return grant


def _supersede_grant(file_id: int, granter_id: int, grantee_id: int, now: datetime, expires_at: datetime | None) -> UserGrant | None:
    result = db.session.execute(
        update(UserGrant)
        .where(UserGrant.file_id == file_id, UserGrant.grantee_id == grantee_id)
        .values(granter_id=granter_id, created_at=now, expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    return find_user_grant(file_id, grantee_id)


@store_operation
def upsert_user_grant(
    file_id: int,
    granter_id: int,
    grantee_id: int,
    ttl: int,
    *,
    now: datetime | None = None,
) -> tuple[UserGrant, bool]:
    """Create or supersede the grant for ``(file_id, grantee_id)``.

    Returns the grant and whether a new row was inserted. The latest call
    always wins: a shorter ``ttl`` shortens an existing longer grant and
    ``ttl == 0`` turns it into a grant that never expires.
    """
    now = now or utc_now()
    file = require_owned_file(file_id, granter_id)
    validate_ttl(ttl)
    if grantee_id == file.owner_id:
        raise InvalidGrantee()
    if db.session.get(User, grantee_id) is None:
        raise NotFound("User not found.")

    expires_at = expiry_for(ttl, now)
    for _ in range(_UPSERT_ROUNDS):
        grant = _insert_grant(file.id, granter_id, grantee_id, now, expires_at)
        if grant is not None:
            return grant, True
        grant = _supersede_grant(file.id, granter_id, grantee_id, now, expires_at)
        if grant is not None:
            return grant, False
    raise Unavailable("The grant changed concurrently, try again.")


def put_user_grant(file_id: int, granter_id: int, grantee_id: int, ttl: int, *, now: datetime | None = None) -> UserGrant:
    grant, _ = upsert_user_grant(file_id, granter_id, grantee_id, ttl, now=now)
    return grant


@store_operation
def list_grants(file_id: int) -> list[UserGrant]:
    return (
        UserGrant.query.filter_by(file_id=file_id)
        .order_by(UserGrant.created_at.desc(), UserGrant.id.desc())
        .all()
    )


@store_operation
def revoke_user_grant(file_id: int, granter_id: int, grantee_id: int, *, now: datetime | None = None) -> None:
    """Hard-delete the active grant for the pair.

    Expired records are not active: they raise ``NotFound`` and stay listed
    until ``purge_expired`` removes them.
    """
    now = now or utc_now()
    require_owned_file(file_id, granter_id)
    result = db.session.execute(
        delete(UserGrant)
        .where(
            UserGrant.file_id == file_id,
            UserGrant.grantee_id == grantee_id,
            or_(UserGrant.expires_at.is_(None), UserGrant.expires_at >= now),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFound("No active grant for this user.")
    db.session.expire_all()


def active_user_grant(file_id: int, grantee_id: int | None, now: datetime) -> UserGrant | None:
    if grantee_id is None:
        return None
    grant = find_user_grant(file_id, grantee_id)
    if grant is None or not is_live(revoked=False, expires_at=grant.expires_at, now=now):
        return None
    return grant


def is_active_user_grant(file_id: int, grantee_id: int | None, now: datetime) -> bool:
    return active_user_grant(file_id, grantee_id, now) is not None
