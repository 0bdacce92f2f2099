from __future__ import annotations

from datetime import timedelta

import pytest

from fileease import create_app
from fileease.config import DEFAULT_JWT_SECRET
from fileease.extensions import db
from fileease.models import ShareLink, User, UserGrant, utc_now
from fileease.sharing.grants import put_user_grant
from fileease.sharing.tokens import mint_token


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/no/such/route")
    assert response.status_code == 404
    assert response.get_json()["error"]["code"] == "HTTP_ERROR"


def test_production_requires_non_default_jwt_secret():
    with pytest.raises(RuntimeError):
        create_app({"ENV": "production", "JWT_SECRET_KEY": DEFAULT_JWT_SECRET})


def test_purge_command(app, user_ids, make_file):
    alice, bob = user_ids["alice"], user_ids["bob"]
    long_ago = utc_now() - timedelta(days=90)

    with app.app_context():
        file_id = make_file(alice)
        put_user_grant(file_id, alice, bob, 60, now=long_ago)
        mint_token(file_id, alice, 60, now=long_ago)
        mint_token(file_id, alice, 0)
        db.session.commit()

    runner = app.test_cli_runner()
    result = runner.invoke(args=["purge-expired"])
    assert result.exit_code == 0, result.output
    assert "Purged 2 expired or revoked share records." in result.output

    with app.app_context():
        assert UserGrant.query.count() == 0
        assert ShareLink.query.count() == 1

    rejected = runner.invoke(args=["purge-expired", "--retention-days", "-1"])
    assert rejected.exit_code != 0


def test_create_user_command(app, client):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["create-user", "dave", "--email", "Dave@Example.com", "--password", "davepass"])
    assert result.exit_code == 0, result.output
    assert "Created user: dave" in result.output

    with app.app_context():
        dave = User.query.filter_by(username="dave").one()
        assert dave.email == "dave@example.com"

    login = client.post("/auth/login", json={"username": "dave", "password": "davepass"})
    assert login.status_code == 200

    reset = runner.invoke(args=["create-user", "dave", "--password", "newpass"])
    assert "Updated user: dave" in reset.output
