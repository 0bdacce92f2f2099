from __future__ import annotations

import os
import re
import shutil
from pathlib import Path
from typing import BinaryIO, Protocol
from uuid import uuid4

from flask import Flask, current_app
from werkzeug.datastructures import FileStorage

from .errors import APIError


INVALID_NAME_PATTERN = re.compile(r"[\\/\x00]")


class BlobStore(Protocol):
    def read(self, key: str) -> BinaryIO: ...

    def size(self, key: str) -> int: ...


def validate_filename(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise APIError(400, "INVALID_NAME", "Name cannot be empty.")
    if len(cleaned) > 255:
        raise APIError(400, "INVALID_NAME", "Name must be <= 255 characters.")
    if INVALID_NAME_PATTERN.search(cleaned):
        raise APIError(400, "INVALID_NAME", "Name contains invalid characters.")
    if cleaned in {".", ".."}:
        raise APIError(400, "INVALID_NAME", "Reserved name.")
    return cleaned


def _safe_resolve(storage_root: Path, relative_path: str) -> Path:
    root = storage_root.resolve()
    candidate = (root / relative_path).resolve()
    if os.path.commonpath([str(root), str(candidate)]) != str(root):
        raise APIError(400, "INVALID_PATH", "Invalid storage path.")
    return candidate


class LocalBlobStore:
    """Blob store keeping file bytes under a directory on local disk."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, file_obj: FileStorage) -> tuple[str, int]:
        if not file_obj.filename:
            raise APIError(400, "INVALID_FILE", "File name is required.")

        ext = Path(file_obj.filename).suffix
        bucket = uuid4().hex[:2]
        key = f"{bucket}/{uuid4().hex}{ext}"

        target_path = _safe_resolve(self.root, key)
        target_path.parent.mkdir(parents=True, exist_ok=True)

        stream = file_obj.stream
        stream.seek(0)
        with target_path.open("wb") as output:
            shutil.copyfileobj(stream, output)

        return key, target_path.stat().st_size

    def read(self, key: str) -> BinaryIO:
        # Caller owns the handle; send_file closes it with the response.
        return _safe_resolve(self.root, key).open("rb")

    def size(self, key: str) -> int:
        return _safe_resolve(self.root, key).stat().st_size

    def delete(self, key: str | None) -> None:
        if not key:
            return
        target_path = _safe_resolve(self.root, key)
        if target_path.exists():
            target_path.unlink()


def init_blob_store(app: Flask) -> LocalBlobStore:
    store = LocalBlobStore(app.config["STORAGE_ROOT"])
    app.extensions["blob_store"] = store
    return store


def get_blob_store() -> LocalBlobStore:
    return current_app.extensions["blob_store"]
