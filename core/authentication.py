"""
Bearer authentication for the REST API.

Requests carry ``Authorization: Bearer <access token>``.  The token is
verified by the shared :class:`~core.services.tokens.TokenCodec`; no
database lookup happens here, so ``request.user`` is a lightweight
:class:`PrincipalUser` and ``request.auth`` the verified
:class:`~core.services.tokens.TokenPrincipal`.  Views that need the full
account load it through the auth service.
"""
from __future__ import annotations

from rest_framework import authentication, exceptions

from core.services.tokens import TokenPrincipal, get_token_codec


class PrincipalUser:
    """Request user backed by token claims only."""
    is_authenticated = True
    is_anonymous = False

    def __init__(self, principal: TokenPrincipal):
        self.principal = principal
        self.id = self.pk = principal.user_id
        self.username = principal.username
        self.is_active = principal.is_active
        self.roles = principal.roles

    def __str__(self) -> str:
        return self.username


class JwtAuthentication(authentication.BaseAuthentication):
    keyword = 'Bearer'

    def authenticate(self, request):
        auth = authentication.get_authorization_header(request).split()
        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None
        if len(auth) != 2:
            raise exceptions.AuthenticationFailed('Invalid Authorization header.')
        try:
            token = auth[1].decode()
        except UnicodeError:
            raise exceptions.AuthenticationFailed('Invalid token header.')

        principal = get_token_codec().verify(token)
        if principal is None:
            raise exceptions.AuthenticationFailed('Invalid or expired token.')
        return PrincipalUser(principal), principal

    def authenticate_header(self, request):
        return self.keyword
