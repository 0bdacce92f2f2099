from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError

from fileease.common.errors import AlreadyRevoked, InvalidTTL, NotFound, NotOwner, TokenSpaceExhausted
from fileease.extensions import db
from fileease.models import IssuedToken, ShareLink, utc_now
from fileease.sharing.decisions import DenyReason
from fileease.sharing.evaluator import evaluate_by_token
from fileease.sharing.tokens import (
    TOKEN_PATTERN,
    link_status,
    list_tokens,
    mint_token,
    resolve_token,
    revoke_token,
    token_digest,
)


pytestmark = pytest.mark.usefixtures("app_ctx")

FIXED_TOKEN = "fixed-token-value-0123456789"


def _sequence(*values: str):
    iterator = iter(values)
    return lambda: next(iterator)


def test_minted_token_is_bound_to_file(user_ids, make_file):
    alice = user_ids["alice"]
    file_id = make_file(alice)

    link = mint_token(file_id, alice, 3600)
    db.session.commit()

    assert TOKEN_PATTERN.fullmatch(link.token)
    assert len(link.token) >= 43
    assert db.session.get(IssuedToken, token_digest(link.token)) is not None
    for _ in range(3):
        assert resolve_token(link.token).file_id == file_id


def test_tokens_are_unique(user_ids, make_file):
    alice = user_ids["alice"]
    file_id = make_file(alice)

    minted = [mint_token(file_id, alice, 0).token for _ in range(200)]
    db.session.commit()

    assert len(set(minted)) == len(minted)
    assert len(list_tokens(file_id)) == 200


def test_links_for_same_file_are_independent(user_ids, make_file):
    alice = user_ids["alice"]
    file_id = make_file(alice)
    first = mint_token(file_id, alice, 0)
    second = mint_token(file_id, alice, 0)

    revoke_token(first.token, alice)

    assert evaluate_by_token(first.token).reason == DenyReason.REVOKED
    assert evaluate_by_token(second.token).allowed


def test_link_expiry_window(user_ids, make_file):
    alice = user_ids["alice"]
    file_id = make_file(alice)
    t0 = utc_now()

    link = mint_token(file_id, alice, 3600, now=t0)

    allowed = evaluate_by_token(link.token, t0 + timedelta(seconds=3599))
    assert allowed.allowed
    assert allowed.grant.id == link.id

    expired = evaluate_by_token(link.token, t0 + timedelta(seconds=3601))
    assert not expired.allowed
    assert expired.reason == DenyReason.EXPIRED
    assert link_status(link, t0 + timedelta(seconds=3601)) == "expired"


def test_never_expiring_link(user_ids, make_file):
    alice = user_ids["alice"]
    file_id = make_file(alice)
    t0 = utc_now()

    link = mint_token(file_id, alice, 0, now=t0)

    assert link.expires_at is None
    assert evaluate_by_token(link.token, t0 + timedelta(seconds=10**9)).allowed


def test_collision_retries_with_fresh_value(user_ids, make_file):
    alice = user_ids["alice"]
    file_id = make_file(alice)

    first = mint_token(file_id, alice, 0, generator=_sequence(FIXED_TOKEN))
    second = mint_token(file_id, alice, 0, generator=_sequence(FIXED_TOKEN, FIXED_TOKEN, "another-token-value-98765"))
    db.session.commit()

    assert first.token == FIXED_TOKEN
    assert second.token == "another-token-value-98765"
    assert ShareLink.query.count() == 2


def test_exhausted_token_space_raises(user_ids, make_file):
    alice = user_ids["alice"]
    file_id = make_file(alice)
    mint_token(file_id, alice, 0, generator=_sequence(FIXED_TOKEN))

    with pytest.raises(TokenSpaceExhausted) as excinfo:
        mint_token(file_id, alice, 0, generator=lambda: FIXED_TOKEN)

    assert excinfo.value.status_code == 503
    assert ShareLink.query.count() == 1


def test_integrity_error_unrelated_to_token_is_not_retried(user_ids, make_file, monkeypatch):
    alice = user_ids["alice"]
    file_id = make_file(alice)
    drawn = []

    def generator():
        drawn.append(FIXED_TOKEN)
        return FIXED_TOKEN

    # A link without a file violates NOT NULL, not the token constraints.
    monkeypatch.setattr("fileease.sharing.tokens.require_owned_file", lambda file_id, user_id: SimpleNamespace(id=None))

    with pytest.raises(IntegrityError):
        mint_token(file_id, alice, 0, generator=generator)

    assert drawn == [FIXED_TOKEN]
    assert ShareLink.query.count() == 0
    assert IssuedToken.query.count() == 0


def test_revoke_is_strict(user_ids, make_file):
    alice, bob = user_ids["alice"], user_ids["bob"]
    file_id = make_file(alice)
    t0 = utc_now()
    link = mint_token(file_id, alice, 0, now=t0)

    with pytest.raises(NotOwner):
        revoke_token(link.token, bob)
    assert evaluate_by_token(link.token).allowed

    revoked = revoke_token(link.token, alice, now=t0 + timedelta(seconds=5))
    assert revoked.revoked is True
    assert revoked.revoked_at is not None
    assert link_status(revoked, t0 + timedelta(seconds=6)) == "revoked"

    with pytest.raises(AlreadyRevoked):
        revoke_token(link.token, alice)
    with pytest.raises(NotFound):
        revoke_token("no-such-token-0000000000", alice)


def test_revoked_takes_precedence_over_expired(user_ids, make_file):
    alice = user_ids["alice"]
    file_id = make_file(alice)
    t0 = utc_now()
    link = mint_token(file_id, alice, 60, now=t0)
    revoke_token(link.token, alice, now=t0)

    decision = evaluate_by_token(link.token, t0 + timedelta(days=1))
    assert decision.reason == DenyReason.REVOKED


@pytest.mark.parametrize("token", [None, "", "short", "has spaces in it here", "x" * 129, "tok/../../etc/passwd"])
def test_malformed_tokens_do_not_resolve(token):
    assert resolve_token(token) is None
    assert evaluate_by_token(token).reason == DenyReason.NOT_FOUND


def test_mint_requires_owner_and_valid_ttl(user_ids, make_file):
    alice, bob = user_ids["alice"], user_ids["bob"]
    file_id = make_file(alice)

    with pytest.raises(NotOwner):
        mint_token(file_id, bob, 60)
    with pytest.raises(InvalidTTL):
        mint_token(file_id, alice, -5)
    with pytest.raises(NotFound):
        mint_token(424242, alice, 60)
    assert ShareLink.query.count() == 0


def test_deleted_file_link_is_not_found(user_ids, make_file):
    alice = user_ids["alice"]
    file_id = make_file(alice)
    link = mint_token(file_id, alice, 0)
    link.file.is_deleted = True
    db.session.commit()

    decision = evaluate_by_token(link.token)
    assert not decision.allowed
    assert decision.reason == DenyReason.NOT_FOUND
