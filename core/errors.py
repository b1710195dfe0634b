"""
Error kinds and the exceptions raised inside the auth core.

Public auth operations never raise: they report one of the
:class:`ErrorKind` values inside a response envelope.  The exceptions
below are raised only *inside* the auth core (token codec
configuration, refresh-token ledger transitions) and are caught by the
orchestrator before they reach a view.

Nothing here may import DRF: the authentication class configured in
``REST_FRAMEWORK`` depends on this module.
"""
from __future__ import annotations

from enum import Enum

from django.core.exceptions import ImproperlyConfigured




class ErrorKind(str, Enum):
    VALIDATION_FAILURE = 'ValidationFailure'
    INVALID_CREDENTIALS = 'InvalidCredentials'
    ACCOUNT_INACTIVE = 'AccountInactive'
    ACCOUNT_LOCKED = 'AccountLocked'
    INVALID_ROLE = 'InvalidRole'
    CREDENTIAL_CREATION_FAILED = 'CredentialCreationFailed'
    ROLE_ASSIGNMENT_FAILED = 'RoleAssignmentFailed'
    INVALID_TOKEN = 'InvalidToken'
    INVALID_REFRESH_TOKEN = 'InvalidRefreshToken'
    REFRESH_TOKEN_EXPIRED = 'RefreshTokenExpired'
    REFRESH_TOKEN_NOT_ACTIVE = 'RefreshTokenNotActive'
    USER_NOT_FOUND = 'UserNotFound'
    USER_INACTIVE = 'UserInactive'
    RESET_FAILED = 'ResetFailed'
    PASSWORD_CHANGE_FAILED = 'PasswordChangeFailed'
    CONFIRMATION_FAILED = 'ConfirmationFailed'
    INTERNAL_ERROR = 'InternalError'


class ConfigurationError(ImproperlyConfigured):
    """Token signing configuration is unusable, or a token cannot be issued."""


# ---------------------------------------------------------------------
# Refresh token ledger
# ---------------------------------------------------------------------
class LedgerError(Exception):
    kind: ErrorKind = ErrorKind.INVALID_REFRESH_TOKEN
    default_message = 'Refresh token error.'

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class RefreshTokenNotFound(LedgerError):
    kind = ErrorKind.INVALID_REFRESH_TOKEN
    default_message = 'Refresh token not found.'


class RefreshTokenNotActive(LedgerError):
    kind = ErrorKind.REFRESH_TOKEN_NOT_ACTIVE
    default_message = 'Token has been revoked or used.'


class RefreshTokenExpired(LedgerError):
    kind = ErrorKind.REFRESH_TOKEN_EXPIRED
    default_message = 'Refresh token has expired.'


class TokenAlreadyUsed(RefreshTokenNotActive):
    default_message = 'Refresh token has already been used.'


class TokenAlreadyRevoked(RefreshTokenNotActive):
    default_message = 'Refresh token has already been revoked.'

