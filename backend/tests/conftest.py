from __future__ import annotations

from pathlib import Path
from uuid import uuid4

import pytest

from fileease import create_app
from fileease.extensions import db
from fileease.models import File, User


USERS = (
    ("alice", "alice@example.com", "alicepass"),
    ("bob", "bob@example.com", "bobpass123"),
    ("carol", "carol@example.com", "carolpass"),
)


@pytest.fixture
def app(tmp_path: Path):
    db_path = tmp_path / "test.db"
    storage_path = tmp_path / "storage"

    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "STORAGE_ROOT": str(storage_path),
            "JWT_SECRET_KEY": "test-secret-key-at-least-32-bytes-long",
            "MAX_UPLOAD_SIZE_BYTES": 5 * 1024 * 1024,
            "TOKEN_MINT_MAX_ATTEMPTS": 3,
        }
    )

    with app.app_context():
        db.create_all()
        for username, email, password in USERS:
            user = User(username=username, email=email, is_active=True)
            user.set_password(password)
            db.session.add(user)
        db.session.commit()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield


@pytest.fixture
def user_ids(app) -> dict[str, int]:
    with app.app_context():
        return {user.username: user.id for user in User.query.all()}


@pytest.fixture
def make_file(app):
    """Create a file row with bytes in the blob store. Needs an app context."""

    def _make(owner_id: int, content: bytes = b"hello world", filename: str = "note.txt") -> int:
        store = app.extensions["blob_store"]
        key = f"{uuid4().hex[:2]}/{uuid4().hex}.txt"
        path = store.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

        node = File(
            owner_id=owner_id,
            filename=filename,
            size=len(content),
            content_type="text/plain",
            storage_key=key,
        )
        db.session.add(node)
        db.session.commit()
        return node.id

    return _make

