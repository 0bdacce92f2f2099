from __future__ import annotations

from flask_jwt_extended import get_jwt_identity

from ..extensions import db
from ..models import User
from .errors import APIError


def current_user(required: bool = True) -> User | None:
    identity = get_jwt_identity()
    if identity is None:
        if required:
            raise APIError(401, "UNAUTHENTICATED", "Authentication required.")
        return None

    user = db.session.get(User, int(identity))
    if (user is None or not user.is_active) and required:
        raise APIError(401, "UNAUTHENTICATED", "Invalid session.")
    return user


def current_user_id() -> int:
    user = current_user(required=True)
    assert user is not None
    return user.id
