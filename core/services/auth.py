"""
Auth orchestrator.

``AuthService`` is the only component that talks to the credential
store, the token codec and the refresh-token ledger together.  Each
public method is one auth operation and always returns an
:class:`~core.responses.ApiResponse`; expected failures are reported
with an :class:`~core.errors.ErrorKind`, anything unexpected is
logged and reported as ``InternalError``.
"""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from django.conf import settings
from django.db import transaction

from core.errors import ErrorKind, LedgerError, TokenAlreadyUsed
from core.models import RefreshToken, Roles, User
from core.responses import ApiResponse
from core.services.audit import try_log_action
from core.services.credentials import CredentialStore, DjangoCredentialStore, SignInResult
from core.services.notifications import LoggingNotifier
from core.services.refresh_tokens import RefreshTokenLedger
from core.services.tokens import TokenCodec, get_token_codec

logger = logging.getLogger(__name__)

INVALID_LOGIN_MESSAGE = 'Invalid username/email or password.'
FORGOT_PASSWORD_MESSAGE = 'If the email exists, a password reset link has been sent.'

LEDGER_MESSAGES = {
    ErrorKind.INVALID_REFRESH_TOKEN: 'Invalid refresh token.',
    ErrorKind.REFRESH_TOKEN_NOT_ACTIVE: 'Refresh token is not active.',
    ErrorKind.REFRESH_TOKEN_EXPIRED: 'Refresh token has expired.',
}


@dataclass(frozen=True)
class UserInfo:
    id: str
    username: str
    email: str
    full_name: str
    is_active: bool
    email_confirmed: bool
    roles: List[str] = field(default_factory=list)
    patient_id: Optional[str] = None
    doctor_id: Optional[str] = None
    hospital_id: Optional[str] = None

    @classmethod
    def for_user(cls, user: User, roles: List[str]) -> 'UserInfo':
        return cls(
            id=str(user.pk),
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            is_active=user.is_active,
            email_confirmed=user.email_confirmed,
            roles=list(roles),
            patient_id=str(user.patient_id) if user.patient_id else None,
            doctor_id=str(user.doctor_id) if user.doctor_id else None,
            hospital_id=str(user.hospital_id) if user.hospital_id else None,
        )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'full_name': self.full_name,
            'is_active': self.is_active,
            'email_confirmed': self.email_confirmed,
            'roles': list(self.roles),
            'patient_id': self.patient_id,
            'doctor_id': self.doctor_id,
            'hospital_id': self.hospital_id,
        }


@dataclass(frozen=True)
class AuthResult:
    access_token: str
    refresh_token: str
    expires_at: Optional[datetime]
    user: UserInfo

    def to_dict(self) -> dict:
        return {
            'access_token': self.access_token,
            'refresh_token': self.refresh_token,
            'token_type': 'Bearer',
            'expires_at': self.expires_at.strftime('%Y-%m-%dT%H:%M:%SZ') if self.expires_at else None,
            'user': self.user.to_dict(),
        }


def _guarded(operation: str):
    """Convert any unexpected fault into an ``InternalError`` envelope."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except Exception as exc:
                logger.exception("Error occurred during %s", operation)
                errors = [str(exc)] if settings.DEBUG else []
                return ApiResponse.failure(
                    ErrorKind.INTERNAL_ERROR, f"An error occurred during {operation}.", errors
                )
        return wrapper
    return decorator


class AuthService:
    def __init__(
        self,
        store: Optional[CredentialStore] = None,
        codec: Optional[TokenCodec] = None,
        ledger: Optional[RefreshTokenLedger] = None,
        notifier=None,
    ):
        self.codec = codec or get_token_codec()
        self.store = store or DjangoCredentialStore()
        self.ledger = ledger or RefreshTokenLedger(ttl=self.codec.config.refresh_token_lifetime)
        self.notifier = notifier or LoggingNotifier()

    # -----------------------------------------------------------------
    # Registration & sign-in
    # -----------------------------------------------------------------
    @_guarded('registration')
    def register(self, *, username: str, email: str, password: str, full_name: str, role: str,
                 ip_address: Optional[str] = None) -> ApiResponse:
        role_name = Roles.canonical(role)
        if role_name is None:
            return ApiResponse.failure(
                ErrorKind.INVALID_ROLE, 'Invalid role specified.', [f"Role '{role}' is not valid."]
            )

        with transaction.atomic():
            result, user = self.store.create_user(
                username=username, email=email, full_name=full_name, password=password
            )
            if not result.succeeded:
                return ApiResponse.failure(
                    ErrorKind.CREDENTIAL_CREATION_FAILED, 'User registration failed.', result.errors
                )

            role_result = self.store.add_role(user, role_name)
            if not role_result.succeeded:
                # no account may exist without a role
                self.store.delete_user(user)
                logger.warning("Rolled back registration of %s: role assignment failed", username)
                return ApiResponse.failure(
                    ErrorKind.ROLE_ASSIGNMENT_FAILED, 'Failed to assign role to user.', role_result.errors
                )

            bundle, _ = self._issue_tokens(user, ip_address or 'Registration')

            # delivery happens once the account exists; a failed send is logged, not fatal
            confirmation = self.store.generate_email_confirmation_token(user)
            transaction.on_commit(
                functools.partial(self.notifier.send_email_confirmation, user, confirmation),
                robust=True,
            )

        try_log_action(user=user, action='register', object_type='user', object_id=user.pk,
                       detail={'role': role_name, 'ip': ip_address})
        logger.info("User %s registered successfully with role %s", user.username, role_name)
        return ApiResponse.success(bundle, 'User registered successfully.')

    @_guarded('login')
    def login(self, *, username_or_email: str, password: str, ip_address: Optional[str] = None) -> ApiResponse:
        identifier = (username_or_email or '').strip()
        if '@' in identifier:
            user = self.store.find_by_email(identifier)
        else:
            user = self.store.find_by_username(identifier)

        if user is None:
            try_log_action(user=None, action='login', object_type='user',
                           detail={'result': 'fail', 'identifier': identifier, 'ip': ip_address})
            return ApiResponse.failure(
                ErrorKind.INVALID_CREDENTIALS, INVALID_LOGIN_MESSAGE, ['Authentication failed.']
            )

        if not user.is_active:
            return ApiResponse.failure(
                ErrorKind.ACCOUNT_INACTIVE,
                'Account is inactive.',
                ['Your account has been deactivated. Please contact support.'],
            )

        outcome = self.store.check_password_sign_in(user, password)
        if outcome is not SignInResult.SUCCESS:
            try_log_action(user=user, action='login', object_type='user', object_id=user.pk,
                           detail={'result': outcome.value, 'ip': ip_address})
            if outcome is SignInResult.LOCKED_OUT:
                return ApiResponse.failure(
                    ErrorKind.ACCOUNT_LOCKED,
                    'Account locked.',
                    ['Account is locked due to multiple failed login attempts.'],
                )
            return ApiResponse.failure(
                ErrorKind.INVALID_CREDENTIALS, INVALID_LOGIN_MESSAGE, ['Authentication failed.']
            )

        self.store.record_login(user)
        bundle, _ = self._issue_tokens(user, ip_address)

        try_log_action(user=user, action='login', object_type='user', object_id=user.pk,
                       detail={'result': 'ok', 'ip': ip_address})
        logger.info("User %s logged in successfully from %s", user.username, ip_address)
        return ApiResponse.success(bundle, 'Login successful.')

    # -----------------------------------------------------------------
    # Token lifecycle
    # -----------------------------------------------------------------
    @_guarded('token refresh')
    def refresh_token(self, *, access_token: str, refresh_token: str,
                      ip_address: Optional[str] = None) -> ApiResponse:
        # The access token is usually expired by now; only its signature matters
        principal = self.codec.principal_from_expired_token(access_token)
        if principal is None:
            return ApiResponse.failure(ErrorKind.INVALID_TOKEN, 'Invalid token.', ['Token validation failed.'])

        try:
            with transaction.atomic():
                current = self.ledger.redeem(refresh_token, principal.user_id, for_update=True)
                user = self.store.find_by_id(principal.user_id)
                if user is None or not user.is_active:
                    self.ledger.mark_used(current)
                    return ApiResponse.failure(
                        ErrorKind.USER_INACTIVE, 'User not found or inactive.', ['Cannot refresh token.']
                    )
                bundle, issued = self._issue_tokens(user, ip_address)
                self.ledger.mark_used(current, replaced_by=issued)
        except LedgerError as exc:
            if isinstance(exc, TokenAlreadyUsed):
                logger.warning("Reuse of a rotated refresh token for user %s from %s",
                               principal.user_id, ip_address)
                try_log_action(user=None, action='refresh_token_reuse', object_type='user',
                               object_id=principal.user_id, detail={'ip': ip_address})
            return ApiResponse.failure(exc.kind, LEDGER_MESSAGES[exc.kind], [str(exc)])

        logger.info("Token refreshed for user %s", user.username)
        return ApiResponse.success(bundle, 'Token refreshed successfully.')

    @_guarded('token revocation')
    def revoke_token(self, *, refresh_token: str, ip_address: Optional[str] = None,
                     user_id=None) -> ApiResponse:
        token = self.ledger.find(refresh_token)
        if token is None or (user_id is not None and str(token.user_id) != str(user_id)):
            return ApiResponse.failure(ErrorKind.INVALID_REFRESH_TOKEN, 'Invalid token.', ['Token not found.'])
        if not token.is_active:
            return ApiResponse.failure(
                ErrorKind.REFRESH_TOKEN_NOT_ACTIVE, 'Token is not active.', ['Token is already revoked or used.']
            )
        try:
            self.ledger.revoke(token, ip_address)
        except LedgerError as exc:
            return ApiResponse.failure(exc.kind, 'Token is not active.', [str(exc)])

        try_log_action(user=None, action='revoke_token', object_type='user', object_id=token.user_id,
                       detail={'ip': ip_address})
        logger.info("Token revoked for user %s from %s", token.user_id, ip_address)
        return ApiResponse.success(True, 'Token revoked successfully.')

    # -----------------------------------------------------------------
    # Passwords
    # -----------------------------------------------------------------
    @_guarded('password reset request')
    def forgot_password(self, *, email: str) -> ApiResponse:
        user = self.store.find_by_email(email)
        if user is not None:
            token = self.store.generate_password_reset_token(user)
            self.notifier.send_password_reset(user, token)
        # same answer either way, account existence is not disclosed
        return ApiResponse.success(True, FORGOT_PASSWORD_MESSAGE)

    @_guarded('password reset')
    def reset_password(self, *, email: str, token: str, new_password: str) -> ApiResponse:
        user = self.store.find_by_email(email)
        if user is None:
            return ApiResponse.failure(ErrorKind.USER_NOT_FOUND, 'Invalid reset request.', ['User not found.'])

        result = self.store.reset_password(user, token, new_password)
        if not result.succeeded:
            return ApiResponse.failure(ErrorKind.RESET_FAILED, 'Password reset failed.', result.errors)

        try_log_action(user=user, action='reset_password', object_type='user', object_id=user.pk)
        logger.info("Password reset successful for user %s", user.username)
        return ApiResponse.success(True, 'Password reset successful.')

    @_guarded('password change')
    def change_password(self, *, user_id, current_password: str, new_password: str) -> ApiResponse:
        user = self.store.find_by_id(user_id)
        if user is None:
            return ApiResponse.failure(ErrorKind.USER_NOT_FOUND, 'User not found.', ['Invalid user ID.'])

        result = self.store.change_password(user, current_password, new_password)
        if not result.succeeded:
            return ApiResponse.failure(ErrorKind.PASSWORD_CHANGE_FAILED, 'Password change failed.', result.errors)

        try_log_action(user=user, action='change_password', object_type='user', object_id=user.pk)
        logger.info("Password changed for user %s", user.username)
        return ApiResponse.success(True, 'Password changed successfully.')

    # -----------------------------------------------------------------
    # Account
    # -----------------------------------------------------------------
    @_guarded('email confirmation')
    def confirm_email(self, *, user_id, token: str) -> ApiResponse:
        user = self.store.find_by_id(user_id)
        if user is None:
            return ApiResponse.failure(ErrorKind.USER_NOT_FOUND, 'User not found.', ['Invalid user ID.'])

        result = self.store.confirm_email(user, token)
        if not result.succeeded:
            return ApiResponse.failure(ErrorKind.CONFIRMATION_FAILED, 'Email confirmation failed.', result.errors)

        logger.info("Email confirmed for user %s", user.username)
        return ApiResponse.success(True, 'Email confirmed successfully.')

    @_guarded('user info retrieval')
    def get_user_info(self, *, user_id) -> ApiResponse:
        user = self.store.find_by_id(user_id)
        if user is None:
            return ApiResponse.failure(ErrorKind.USER_NOT_FOUND, 'User not found.', ['Invalid user ID.'])
        info = UserInfo.for_user(user, self.store.get_roles(user))
        return ApiResponse.success(info, 'User info retrieved successfully.')

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------
    def _issue_tokens(self, user: User, ip_address: Optional[str]) -> Tuple[AuthResult, RefreshToken]:
        roles = self.store.get_roles(user)
        access_token = self.codec.issue_access_token(user, roles)
        refresh = self.ledger.issue(user, ip_address)
        bundle = AuthResult(
            access_token=access_token,
            refresh_token=refresh.token,
            expires_at=self.codec.extract_expiry(access_token),
            user=UserInfo.for_user(user, roles),
        )
        return bundle, refresh
