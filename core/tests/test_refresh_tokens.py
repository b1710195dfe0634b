from datetime import timedelta

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone

from core.errors import (
    RefreshTokenExpired,
    RefreshTokenNotActive,
    RefreshTokenNotFound,
    TokenAlreadyRevoked,
    TokenAlreadyUsed,
)
from core.models import RefreshToken, User
from core.services.refresh_tokens import RefreshTokenLedger

pytestmark = pytest.mark.django_db


@pytest.fixture
def ledger():
    return RefreshTokenLedger(ttl=timedelta(days=7))


def test_issue_persists_an_active_token(ledger, user):
    t = ledger.issue(user, '10.0.0.1')
    assert t.state == 'active'
    assert t.created_by_ip == '10.0.0.1'
    assert timedelta(days=6, hours=23) < t.expires_at - timezone.now() <= timedelta(days=7)
    assert ledger.find(t.token) == t
    assert ledger.issue(user, None).token != t.token


def test_redeem_checks_owner_and_value(ledger, user):
    t = ledger.issue(user, None)
    stranger = User.objects.create_user(username='eve', email='eve@x.com', password='x')
    assert ledger.redeem(t.token, user.pk) == t
    with pytest.raises(RefreshTokenNotFound):
        ledger.redeem(t.token, stranger.pk)
    with pytest.raises(RefreshTokenNotFound):
        ledger.redeem('nope', user.pk)
    with pytest.raises(RefreshTokenNotFound):
        ledger.redeem('', user.pk)


def test_used_token_cannot_be_redeemed_again(ledger, user):
    old = ledger.issue(user, None)
    new = ledger.issue(user, None)
    ledger.mark_used(old, replaced_by=new)
    old.refresh_from_db()
    assert old.is_used and old.used_at is not None
    assert old.replaced_by_token == new.token
    with pytest.raises(TokenAlreadyUsed):
        ledger.redeem(old.token, user.pk)
    # still reported under the not-active kind
    with pytest.raises(RefreshTokenNotActive):
        ledger.redeem(old.token, user.pk)


def test_revoked_and_expired_tokens_are_refused(ledger, user):
    revoked = ledger.issue(user, None)
    ledger.revoke(revoked, '10.0.0.9')
    revoked.refresh_from_db()
    assert revoked.state == 'revoked'
    assert revoked.revoked_by_ip == '10.0.0.9'
    with pytest.raises(TokenAlreadyRevoked):
        ledger.redeem(revoked.token, user.pk)

    expired = ledger.issue(user, None, ttl=timedelta(seconds=-1))
    assert expired.state == 'expired'
    with pytest.raises(RefreshTokenExpired):
        ledger.redeem(expired.token, user.pk)


def test_terminal_states_do_not_change(ledger, user):
    t = ledger.issue(user, None)
    stale = RefreshToken.objects.get(pk=t.pk)
    ledger.mark_used(t)
    # a second holder of the same row loses the race
    with pytest.raises(TokenAlreadyUsed):
        ledger.mark_used(stale)
    with pytest.raises(TokenAlreadyUsed):
        ledger.revoke(stale, None)
    t.refresh_from_db()
    assert t.is_used and not t.is_revoked


def test_used_and_revoked_together_violates_constraint(user):
    with pytest.raises(IntegrityError), transaction.atomic():
        RefreshToken.objects.create(
            user=user, token='both', expires_at=timezone.now() + timedelta(days=1),
            is_used=True, is_revoked=True,
        )


def test_purge_keeps_live_tokens(ledger, user):
    live = ledger.issue(user, None)
    used = ledger.issue(user, None)
    ledger.mark_used(used)
    expired = ledger.issue(user, None, ttl=timedelta(seconds=-1))
    fresh_used = ledger.issue(user, None)
    ledger.mark_used(fresh_used)
    cutoff = timezone.now()
    RefreshToken.objects.filter(pk=fresh_used.pk).update(created_at=cutoff + timedelta(minutes=1))

    assert ledger.purge(older_than=cutoff) == 2
    remaining = set(RefreshToken.objects.values_list('pk', flat=True))
    assert remaining == {live.pk, fresh_used.pk}
    assert expired.pk not in remaining
