from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import create_access_token, jwt_required
from sqlalchemy import func

from ..common.audit import audit
from ..common.errors import APIError
from ..common.identity import current_user
from ..extensions import db
from ..models import User


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.post("/login")
def login():
    payload = request.get_json(silent=True) or {}
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""

    if not username or not password:
        raise APIError(400, "INVALID_CREDENTIALS", "Username and password are required.")

    user = User.query.filter(func.lower(User.username) == username.lower()).one_or_none()
    if user is None or not user.verify_password(password):
        audit(action="auth.login_failed", details={"username": username})
        db.session.commit()
        raise APIError(401, "INVALID_CREDENTIALS", "Invalid username or password.")
    if not user.is_active:
        raise APIError(403, "ACCOUNT_DISABLED", "This account is disabled.")

    audit(action="auth.login", actor_id=user.id, target_type="user", target_id=str(user.id))
    db.session.commit()

    return jsonify({"access_token": create_access_token(identity=str(user.id)), "user": user.to_dict()})


@auth_bp.get("/me")
@jwt_required()
def me():
    user = current_user(required=True)
    assert user is not None
    return jsonify({"user": user.to_dict()})
