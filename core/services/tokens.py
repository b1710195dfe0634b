"""
Access-token codec.

Builds and verifies HS256-signed JWTs carrying a user's identity, roles
and clinical profile links, and produces the opaque random strings used
as refresh tokens.  The codec holds no mutable state beyond its
immutable :class:`JwtSettings`, so a single instance is shared by every
request.
"""
from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone as dt_timezone
from functools import lru_cache
from typing import Iterable, Optional

import jwt
from django.conf import settings
from django.utils import timezone
from rest_framework_simplejwt.backends import TokenBackend
from rest_framework_simplejwt.exceptions import TokenBackendError

from core.errors import ConfigurationError

ALGORITHM = 'HS256'
MIN_SECRET_BYTES = 16
REFRESH_TOKEN_BYTES = 64

CLAIM_USER_ID = 'sub'
CLAIM_USERNAME = 'username'
CLAIM_EMAIL = 'email'
CLAIM_FULL_NAME = 'fullName'
CLAIM_IS_ACTIVE = 'isActive'
CLAIM_ROLES = 'role'
CLAIM_JTI = 'jti'
CLAIM_PATIENT_ID = 'patientId'
CLAIM_DOCTOR_ID = 'doctorId'
CLAIM_HOSPITAL_ID = 'hospitalId'

REQUIRED_CLAIMS = ['exp', 'iat', CLAIM_USER_ID, CLAIM_JTI]


@dataclass(frozen=True)
class JwtSettings:
    secret_key: str
    issuer: str
    audience: str
    access_token_minutes: int = 60
    refresh_token_days: float = 7

    def validate(self) -> None:
        if not (self.secret_key or '').strip():
            raise ConfigurationError('JWT secret key is required.')
        if not (self.issuer or '').strip():
            raise ConfigurationError('JWT issuer is required.')
        if not (self.audience or '').strip():
            raise ConfigurationError('JWT audience is required.')
        if self.access_token_minutes <= 0:
            raise ConfigurationError('Access token lifetime must be greater than 0 minutes.')
        if self.refresh_token_days <= 0:
            raise ConfigurationError('Refresh token lifetime must be greater than 0 days.')
        if len(self.secret_key.encode('utf-8')) < MIN_SECRET_BYTES:
            raise ConfigurationError(
                f'JWT secret key must be at least {MIN_SECRET_BYTES} bytes long.'
            )

    @property
    def access_token_lifetime(self) -> timedelta:
        return timedelta(minutes=self.access_token_minutes)

    @property
    def refresh_token_lifetime(self) -> timedelta:
        return timedelta(days=self.refresh_token_days)

    @classmethod
    def from_settings(cls) -> 'JwtSettings':
        return cls(
            secret_key=settings.JWT_SECRET_KEY,
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            access_token_minutes=settings.JWT_ACCESS_TOKEN_MINUTES,
            refresh_token_days=settings.JWT_REFRESH_TOKEN_DAYS,
        )


@dataclass(frozen=True)
class TokenPrincipal:
    """Claims recovered from a verified access token."""
    user_id: uuid.UUID
    username: str
    email: str
    full_name: str
    is_active: bool
    roles: frozenset
    jti: str
    expires_at: datetime
    patient_id: Optional[str] = None
    doctor_id: Optional[str] = None
    hospital_id: Optional[str] = None
    claims: dict = field(default_factory=dict, compare=False, repr=False)

    def has_role(self, *roles: str) -> bool:
        return any(role in self.roles for role in roles)


class TokenCodec:
    def __init__(self, config: JwtSettings):
        config.validate()
        self.config = config
        self._backend = TokenBackend(
            ALGORITHM,
            signing_key=config.secret_key,
            audience=config.audience,
            issuer=config.issuer,
            leeway=0,
        )

    # -----------------------------------------------------------------
    # Issuance
    # -----------------------------------------------------------------
    def issue_access_token(self, user, roles: Iterable[str], now: Optional[datetime] = None) -> str:
        roles = list(roles or [])
        if not roles:
            raise ConfigurationError('User must have at least one role.')

        now = now or timezone.now()
        issued = int(now.timestamp())
        payload = {
            CLAIM_USER_ID: str(user.pk),
            CLAIM_USERNAME: user.username,
            CLAIM_EMAIL: user.email,
            CLAIM_FULL_NAME: user.full_name,
            CLAIM_IS_ACTIVE: bool(user.is_active),
            CLAIM_JTI: uuid.uuid4().hex,
            CLAIM_ROLES: roles,
            'iat': issued,
            'nbf': issued,
            'exp': int((now + self.config.access_token_lifetime).timestamp()),
        }
        if user.patient_id:
            payload[CLAIM_PATIENT_ID] = str(user.patient_id)
        if user.doctor_id:
            payload[CLAIM_DOCTOR_ID] = str(user.doctor_id)
        if user.hospital_id:
            payload[CLAIM_HOSPITAL_ID] = str(user.hospital_id)
        return self._backend.encode(payload)

    @staticmethod
    def generate_opaque_secret() -> str:
        """64 bytes from the OS CSPRNG, URL-safe base64 encoded."""
        return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)

    # -----------------------------------------------------------------
    # Verification
    # -----------------------------------------------------------------
    def verify(self, token: Optional[str]) -> Optional[TokenPrincipal]:
        """Return the principal for a valid token, ``None`` for anything else."""
        if not self._has_pinned_algorithm(token):
            return None
        try:
            payload = self._backend.decode(token, verify=True)
        except (TokenBackendError, jwt.PyJWTError):
            return None
        return self._principal(payload)

    def principal_from_expired_token(self, token: Optional[str]) -> Optional[TokenPrincipal]:
        """Like :meth:`verify` but accepts tokens whose lifetime has ended."""
        if not self._has_pinned_algorithm(token):
            return None
        try:
            payload = jwt.decode(
                token,
                self.config.secret_key,
                algorithms=[ALGORITHM],
                audience=self.config.audience,
                issuer=self.config.issuer,
                options={'verify_exp': False, 'require': REQUIRED_CLAIMS},
            )
        except jwt.PyJWTError:
            return None
        return self._principal(payload)

    def extract_user_id(self, token: Optional[str], allow_expired: bool = False) -> Optional[uuid.UUID]:
        principal = self.principal_from_expired_token(token) if allow_expired else self.verify(token)
        return principal.user_id if principal else None

    def extract_expiry(self, token: Optional[str]) -> Optional[datetime]:
        """Read ``exp`` without verifying the signature."""
        if not token or not isinstance(token, str):
            return None
        try:
            payload = jwt.decode(token, options={'verify_signature': False})
            return datetime.fromtimestamp(int(payload['exp']), tz=dt_timezone.utc)
        except (jwt.PyJWTError, KeyError, TypeError, ValueError, OverflowError):
            return None

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------
    @staticmethod
    def _has_pinned_algorithm(token) -> bool:
        if not token or not isinstance(token, str):
            return False
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError:
            return False
        return header.get('alg') == ALGORITHM

    @staticmethod
    def _principal(payload: dict) -> Optional[TokenPrincipal]:
        try:
            user_id = uuid.UUID(str(payload[CLAIM_USER_ID]))
            expires_at = datetime.fromtimestamp(int(payload['exp']), tz=dt_timezone.utc)
        except (KeyError, TypeError, ValueError, OverflowError):
            return None
        roles = payload.get(CLAIM_ROLES) or []
        if isinstance(roles, str):
            roles = [roles]
        return TokenPrincipal(
            user_id=user_id,
            username=payload.get(CLAIM_USERNAME, ''),
            email=payload.get(CLAIM_EMAIL, ''),
            full_name=payload.get(CLAIM_FULL_NAME, ''),
            is_active=bool(payload.get(CLAIM_IS_ACTIVE, False)),
            roles=frozenset(roles),
            jti=str(payload.get(CLAIM_JTI, '')),
            expires_at=expires_at,
            patient_id=payload.get(CLAIM_PATIENT_ID),
            doctor_id=payload.get(CLAIM_DOCTOR_ID),
            hospital_id=payload.get(CLAIM_HOSPITAL_ID),
            claims=dict(payload),
        )


@lru_cache(maxsize=1)
def get_token_codec() -> TokenCodec:
    """Process-wide codec built from Django settings (validated on first use)."""
    return TokenCodec(JwtSettings.from_settings())
