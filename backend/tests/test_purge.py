from __future__ import annotations

from datetime import timedelta

import pytest

from fileease.common.errors import TokenSpaceExhausted
from fileease.extensions import db
from fileease.models import IssuedToken, ShareLink, UserGrant, utc_now
from fileease.sharing.grants import put_user_grant
from fileease.sharing.revocation import purge_expired, revoke_share_link
from fileease.sharing.tokens import mint_token, token_digest


pytestmark = pytest.mark.usefixtures("app_ctx")


def test_purge_removes_only_dead_records(user_ids, make_file):
    alice, bob, carol = user_ids["alice"], user_ids["bob"], user_ids["carol"]
    file_id = make_file(alice)
    now = utc_now()
    long_ago = now - timedelta(days=3)

    put_user_grant(file_id, alice, bob, 60, now=long_ago)
    put_user_grant(file_id, alice, carol, 0, now=long_ago)
    expired_link = mint_token(file_id, alice, 60, now=long_ago)
    revoked_link = mint_token(file_id, alice, 0, now=long_ago)
    revoke_share_link(revoked_link.token, alice, now=long_ago)
    live_link = mint_token(file_id, alice, 3600, now=now)
    db.session.commit()

    removed = purge_expired(now - timedelta(days=1), now=now)
    db.session.commit()

    assert removed == 3
    assert [grant.grantee_id for grant in UserGrant.query.all()] == [carol]
    assert [link.token for link in ShareLink.query.all()] == [live_link.token]
    assert db.session.get(IssuedToken, token_digest(expired_link.token)) is not None


def test_purge_never_removes_active_records(user_ids, make_file):
    alice, bob = user_ids["alice"], user_ids["bob"]
    file_id = make_file(alice)
    now = utc_now()

    put_user_grant(file_id, alice, bob, 3600, now=now)
    mint_token(file_id, alice, 3600, now=now)
    db.session.commit()

    # A cutoff in the future is clamped to now.
    assert purge_expired(now + timedelta(days=365), now=now) == 0
    assert UserGrant.query.count() == 1
    assert ShareLink.query.count() == 1


def test_purged_token_is_never_reissued(user_ids, make_file):
    alice = user_ids["alice"]
    file_id = make_file(alice)
    long_ago = utc_now() - timedelta(days=10)
    token = "retired-token-value-000000001"

    mint_token(file_id, alice, 60, now=long_ago, generator=lambda: token)
    db.session.commit()
    assert purge_expired(utc_now()) == 1
    db.session.commit()
    assert ShareLink.query.count() == 0

    with pytest.raises(TokenSpaceExhausted):
        mint_token(file_id, alice, 60, generator=lambda: token)
