from __future__ import annotations

from pathlib import Path

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required

from ..common.audit import audit
from ..common.errors import APIError
from ..common.identity import current_user_id
from ..common.storage import get_blob_store, validate_filename
from ..extensions import db
from ..models import File, utc_now
from ..sharing.ownership import require_owned_file


files_bp = Blueprint("files", __name__, url_prefix="/files")


@files_bp.get("/list")
@jwt_required()
def list_files():
    user_id = current_user_id()
    items = (
        File.query.filter_by(owner_id=user_id, is_deleted=False)
        .order_by(File.created_at.desc(), File.id.desc())
        .all()
    )
    return jsonify({"items": [item.to_dict() for item in items]})


@files_bp.post("/upload")
@jwt_required()
def upload_file():
    user_id = current_user_id()

    file_obj = request.files.get("file")
    if file_obj is None:
        raise APIError(400, "INVALID_FILE", "Multipart field 'file' is required.")

    filename = validate_filename(Path(file_obj.filename or "").name)

    file_obj.stream.seek(0, 2)
    file_size = file_obj.stream.tell()
    file_obj.stream.seek(0)

    if file_size <= 0:
        raise APIError(400, "INVALID_FILE", "File is empty.")
    if file_size > current_app.config["MAX_UPLOAD_SIZE_BYTES"]:
        raise APIError(413, "UPLOAD_TOO_LARGE", "File exceeds max upload size.")

    storage_key, stored_size = get_blob_store().save(file_obj)

    node = File(
        owner_id=user_id,
        filename=filename,
        size=stored_size,
        content_type=file_obj.mimetype or "application/octet-stream",
        storage_key=storage_key,
    )
    db.session.add(node)
    db.session.flush()
    audit(
        action="files.upload",
        actor_id=user_id,
        target_type="file",
        target_id=str(node.id),
        details={"filename": filename, "size": stored_size},
    )
    db.session.commit()

    return jsonify({"item": node.to_dict()}), 201


@files_bp.delete("/<int:file_id>")
@jwt_required()
def delete_file(file_id: int):
    user_id = current_user_id()
    node = require_owned_file(file_id, user_id)

    # Soft delete: grants and links stay for the audit trail but stop resolving.
    node.is_deleted = True
    node.deleted_at = utc_now()
    audit(
        action="files.delete",
        actor_id=user_id,
        target_type="file",
        target_id=str(node.id),
    )
    db.session.commit()

    return jsonify({"deleted": True})
