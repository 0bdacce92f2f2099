from __future__ import annotations

from flask import Blueprint, jsonify, send_file
from flask_jwt_extended import jwt_required

from ..common.identity import current_user_id
from ..sharing import gateway
from ..sharing.gateway import FileDownload


access_bp = Blueprint("access", __name__)


def _no_store(response):  # type: ignore[no-untyped-def]
    # Access is re-evaluated per request; intermediaries must not replay it.
    response.headers["Cache-Control"] = "no-store"
    return response


def _download_response(download: FileDownload):  # type: ignore[no-untyped-def]
    metadata = download.metadata
    response = send_file(
        download.stream,
        as_attachment=True,
        download_name=metadata.filename,
        mimetype=metadata.content_type or "application/octet-stream",
        max_age=0,
    )
    response.headers["Content-Length"] = str(download.length)
    return _no_store(response)


@access_bp.get("/public/shares/<string:token>/info")
def probe_share(token: str):
    metadata = gateway.probe(token)
    return _no_store(jsonify({"file": metadata.to_dict()}))


@access_bp.get("/public/shares/<string:token>")
def fetch_share(token: str):
    return _download_response(gateway.fetch_by_token(token))


@access_bp.get("/files/<int:file_id>/download")
@jwt_required()
def fetch_file(file_id: int):
    return _download_response(gateway.fetch_by_file(file_id, current_user_id()))
