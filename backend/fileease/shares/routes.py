from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required

from ..common.errors import APIError, InvalidTTL
from ..common.identity import current_user_id
from ..models import ShareLink, UserGrant, utc_now
from ..sharing import gateway
from ..sharing.decisions import is_live


shares_bp = Blueprint("shares", __name__, url_prefix="/shares")


def _json_payload() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise APIError(400, "INVALID_PAYLOAD", "Request body must be a JSON object.")
    return payload


def _parse_ttl(payload: dict[str, Any]) -> int:
    raw = payload.get("ttl_seconds")
    if raw is None or raw == "":
        return int(current_app.config["DEFAULT_SHARE_TTL_SECONDS"])
    if isinstance(raw, bool):
        raise InvalidTTL()
    if isinstance(raw, str):
        cleaned = raw.strip()
        # isdigit() also accepts superscripts and other non-ASCII digits.
        if not (cleaned.isascii() and cleaned.isdigit()):
            raise InvalidTTL()
        raw = int(cleaned)
    if not isinstance(raw, int):
        raise InvalidTTL()
    return raw


def _public_url_for_token(token: str) -> str:
    return f"{request.host_url.rstrip('/')}/public/shares/{token}"


def _link_payload(link: ShareLink) -> dict[str, Any]:
    payload = link.to_dict()
    payload["public_url"] = _public_url_for_token(link.token)
    return payload


@shares_bp.get("/<int:file_id>")
@jwt_required()
def list_shares(file_id: int):
    listing = gateway.list_shares(file_id, current_user_id())
    for item in listing["links"]:
        item["public_url"] = _public_url_for_token(item["token"])
    return jsonify(listing)


@shares_bp.post("/<int:file_id>/users")
@jwt_required()
def share_with_user(file_id: int):
    payload = _json_payload()
    ttl = _parse_ttl(payload)
    grant, created = gateway.share_with_user(file_id, current_user_id(), payload.get("grantee"), ttl)
    return jsonify({"grant": grant.to_dict(), "created": created}), 201 if created else 200


@shares_bp.delete("/<int:file_id>/users/<int:grantee_id>")
@jwt_required()
def revoke_user_share(file_id: int, grantee_id: int):
    gateway.unshare_user(file_id, current_user_id(), grantee_id)
    return jsonify({"revoked": True})


@shares_bp.post("/<int:file_id>/links")
@jwt_required()
def create_share_link(file_id: int):
    payload = _json_payload()
    ttl = _parse_ttl(payload)
    link = gateway.create_share_link(file_id, current_user_id(), ttl)
    return jsonify({"link": _link_payload(link), "token": link.token, "expires_at": link.to_dict()["expires_at"]}), 201


@shares_bp.delete("/links/<string:token>")
@jwt_required()
def revoke_share_link(token: str):
    gateway.revoke_share_link(token, current_user_id())
    return jsonify({"revoked": True})


@shares_bp.get("/<int:file_id>/activity")
@jwt_required()
def file_activity(file_id: int):
    entries = gateway.file_activity(file_id, current_user_id())
    return jsonify({"items": [entry.to_dict() for entry in entries]})


@shares_bp.get("/received")
@jwt_required()
def shared_with_me():
    user_id = current_user_id()
    now = utc_now()
    grants = (
        UserGrant.query.filter_by(grantee_id=user_id)
        .order_by(UserGrant.created_at.desc(), UserGrant.id.desc())
        .all()
    )
    items = [
        {"grant": grant.to_dict(), "file": grant.file.to_dict()}
        for grant in grants
        if grant.file is not None
        and not grant.file.is_deleted
        and is_live(revoked=False, expires_at=grant.expires_at, now=now)
    ]
    return jsonify({"items": items})
