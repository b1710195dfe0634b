"""
Refresh token ledger.

Tracks every refresh token handed out and enforces single-use rotation:
a token is *redeemed* (looked up and checked), then *marked used* by the
caller together with the issuance of its replacement.  Lookups never
change state on their own.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from django.db.models import Q
from django.utils import timezone

from core.errors import (
    RefreshTokenExpired,
    RefreshTokenNotActive,
    RefreshTokenNotFound,
    TokenAlreadyRevoked,
    TokenAlreadyUsed,
)
from core.models import RefreshToken, User
from core.services.tokens import TokenCodec

logger = logging.getLogger(__name__)


class RefreshTokenLedger:
    def __init__(self, ttl: timedelta, secret_factory=TokenCodec.generate_opaque_secret):
        self.ttl = ttl
        self._secret_factory = secret_factory

    def issue(self, user: User, ip_address: Optional[str], ttl: Optional[timedelta] = None) -> RefreshToken:
        now = timezone.now()
        return RefreshToken.objects.create(
            user=user,
            token=self._secret_factory(),
            expires_at=now + (ttl or self.ttl),
            created_at=now,
            created_by_ip=(ip_address or '')[:64],
        )

    def find(self, token_value: Optional[str]) -> Optional[RefreshToken]:
        if not token_value:
            return None
        return RefreshToken.objects.filter(token=token_value).first()

    def redeem(self, token_value: Optional[str], expected_user_id, for_update: bool = False) -> RefreshToken:
        """Return the matching active token or raise the reason it cannot be used.

        ``for_update`` locks the row; call it inside ``transaction.atomic``.
        """
        if not token_value:
            raise RefreshTokenNotFound()
        qs = RefreshToken.objects.filter(token=token_value, user_id=expected_user_id)
        if for_update:
            qs = qs.select_for_update()
        token = qs.first()
        if token is None:
            raise RefreshTokenNotFound()
        if token.is_used:
            raise TokenAlreadyUsed()
        if token.is_revoked:
            raise TokenAlreadyRevoked()
        if token.is_expired:
            raise RefreshTokenExpired()
        return token

    def mark_used(self, token: RefreshToken, replaced_by: Optional[RefreshToken] = None) -> RefreshToken:
        now = timezone.now()
        fields = {'is_used': True, 'used_at': now}
        if replaced_by is not None:
            fields['replaced_by_token'] = replaced_by.token
        self._transition(token, fields)
        for name, value in fields.items():
            setattr(token, name, value)
        return token

    def revoke(self, token: RefreshToken, ip_address: Optional[str]) -> RefreshToken:
        fields = {
            'is_revoked': True,
            'revoked_at': timezone.now(),
            'revoked_by_ip': (ip_address or '')[:64],
        }
        self._transition(token, fields)
        for name, value in fields.items():
            setattr(token, name, value)
        return token

    def purge(self, older_than: datetime) -> int:
        """Delete finished tokens (expired, used or revoked) created before ``older_than``."""
        now = timezone.now()
        deleted, _ = RefreshToken.objects.filter(
            Q(expires_at__lte=now) | Q(is_used=True) | Q(is_revoked=True),
            created_at__lt=older_than,
        ).delete()
        logger.info("Purged %s refresh tokens created before %s", deleted, older_than.isoformat())
        return deleted

    @staticmethod
    def _transition(token: RefreshToken, fields: dict) -> None:
        # Conditional update: only an active row may leave the active state
        updated = RefreshToken.objects.filter(
            pk=token.pk, is_used=False, is_revoked=False
        ).update(**fields)
        if updated:
            return
        current = RefreshToken.objects.filter(pk=token.pk).values('is_used', 'is_revoked').first()
        if current is None:
            raise RefreshTokenNotFound()
        if current['is_used']:
            raise TokenAlreadyUsed()
        if current['is_revoked']:
            raise TokenAlreadyRevoked()
        raise RefreshTokenNotActive()
