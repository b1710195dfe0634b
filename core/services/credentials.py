"""
Credential store: user accounts, password hashing, lockout and roles.

:class:`CredentialStore` is the interface the auth orchestrator talks
to; :class:`DjangoCredentialStore` implements it on top of the Django
ORM and ``django.contrib.auth`` (password hashers, password validators
and the HMAC token generators used for password reset and e-mail
confirmation).  Primitives report failures through
:class:`~core.responses.StoreResult` rather than raising.
"""
from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import List, Optional, Tuple

from django.conf import settings
from django.contrib.auth.password_validation import validate_password
from django.contrib.auth.tokens import PasswordResetTokenGenerator, default_token_generator
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from core.models import Roles, User, UserRole
from core.responses import StoreResult

logger = logging.getLogger(__name__)


class SignInResult(enum.Enum):
    SUCCESS = 'success'
    FAILED = 'failed'
    LOCKED_OUT = 'locked_out'


class EmailConfirmationTokenGenerator(PasswordResetTokenGenerator):
    """HMAC token that stops validating once the e-mail is confirmed or changed."""
    key_salt = 'core.services.credentials.EmailConfirmationTokenGenerator'

    def _make_hash_value(self, user, timestamp):
        return f"{user.pk}{user.email}{user.email_confirmed}{timestamp}"


email_confirmation_token_generator = EmailConfirmationTokenGenerator()


class CredentialStore(ABC):
    @abstractmethod
    def find_by_id(self, user_id) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    def find_by_username(self, username: str) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[User]:
        raise NotImplementedError

    @abstractmethod
    def create_user(self, *, username: str, email: str, full_name: str, password: str) -> Tuple[StoreResult, Optional[User]]:
        raise NotImplementedError

    @abstractmethod
    def delete_user(self, user: User) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_role(self, user: User, role: str) -> StoreResult:
        raise NotImplementedError

    @abstractmethod
    def get_roles(self, user: User) -> List[str]:
        raise NotImplementedError

    @abstractmethod
    def check_password_sign_in(self, user: User, password: str) -> SignInResult:
        raise NotImplementedError

    @abstractmethod
    def verify_password(self, user: User, password: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def set_password(self, user: User, new_password: str) -> StoreResult:
        raise NotImplementedError

    @abstractmethod
    def change_password(self, user: User, current_password: str, new_password: str) -> StoreResult:
        raise NotImplementedError

    @abstractmethod
    def record_login(self, user: User) -> None:
        raise NotImplementedError

    @abstractmethod
    def generate_password_reset_token(self, user: User) -> str:
        raise NotImplementedError

    @abstractmethod
    def reset_password(self, user: User, token: str, new_password: str) -> StoreResult:
        raise NotImplementedError

    @abstractmethod
    def generate_email_confirmation_token(self, user: User) -> str:
        raise NotImplementedError

    @abstractmethod
    def confirm_email(self, user: User, token: str) -> StoreResult:
        raise NotImplementedError


class DjangoCredentialStore(CredentialStore):
    def __init__(
        self,
        max_failed_attempts: Optional[int] = None,
        lockout_minutes: Optional[int] = None,
        reset_tokens: PasswordResetTokenGenerator = default_token_generator,
        confirmation_tokens: PasswordResetTokenGenerator = email_confirmation_token_generator,
    ):
        self.max_failed_attempts = max_failed_attempts or settings.AUTH_LOCKOUT_MAX_ATTEMPTS
        self.lockout_duration = timedelta(minutes=lockout_minutes or settings.AUTH_LOCKOUT_MINUTES)
        self.reset_tokens = reset_tokens
        self.confirmation_tokens = confirmation_tokens

    # -----------------------------------------------------------------
    # Lookups (explicit, case-insensitive like the unique index intends)
    # -----------------------------------------------------------------
    def find_by_id(self, user_id) -> Optional[User]:
        if not user_id:
            return None
        try:
            return User.objects.filter(pk=user_id).first()
        except ValidationError:
            # not a UUID
            return None

    def find_by_username(self, username: str) -> Optional[User]:
        if not username:
            return None
        return User.objects.filter(username__iexact=username.strip()).first()

    def find_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        return User.objects.filter(email__iexact=email.strip()).first()

    # -----------------------------------------------------------------
    # Accounts
    # -----------------------------------------------------------------
    def create_user(self, *, username, email, full_name, password):
        errors = []
        if User.objects.filter(username__iexact=username).exists():
            errors.append(f"Username '{username}' is already taken.")
        if User.objects.filter(email__iexact=email).exists():
            errors.append(f"Email '{email}' is already taken.")

        candidate = User(username=username, email=User.objects.normalize_email(email), full_name=full_name)
        errors.extend(self._password_errors(password, candidate))
        if errors:
            return StoreResult.failed(*errors), None

        candidate.set_password(password)
        try:
            with transaction.atomic():
                candidate.save(force_insert=True)
        except IntegrityError:
            # lost a race against a concurrent registration
            return StoreResult.failed('Username or email is already taken.'), None
        return StoreResult.success(), candidate

    def delete_user(self, user: User) -> None:
        user.delete()

    def record_login(self, user: User) -> None:
        user.record_login()
        user.save(update_fields=['last_login', 'updated_at'])

    # -----------------------------------------------------------------
    # Roles
    # -----------------------------------------------------------------
    def add_role(self, user: User, role: str) -> StoreResult:
        name = Roles.canonical(role)
        if name is None:
            return StoreResult.failed(f"Role '{role}' does not exist.")
        try:
            with transaction.atomic():
                _, created = UserRole.objects.get_or_create(user=user, role=name)
        except IntegrityError:
            created = False
        if not created:
            return StoreResult.failed(f"User already in role '{name}'.")
        return StoreResult.success()

    def get_roles(self, user: User) -> List[str]:
        return list(
            UserRole.objects.filter(user=user).order_by('created_at', 'pk').values_list('role', flat=True)
        )

    # -----------------------------------------------------------------
    # Passwords & lockout
    # -----------------------------------------------------------------
    def verify_password(self, user: User, password: str) -> bool:
        return bool(password) and user.check_password(password)

    def check_password_sign_in(self, user, password) -> SignInResult:
        if user.is_locked_out:
            return SignInResult.LOCKED_OUT

        rows = User.objects.filter(pk=user.pk)
        if self.verify_password(user, password):
            if user.access_failed_count or user.lockout_end:
                rows.update(access_failed_count=0, lockout_end=None, updated_at=timezone.now())
                user.access_failed_count, user.lockout_end = 0, None
            return SignInResult.SUCCESS

        # concurrent failures must all count, so increment in the database
        rows.update(access_failed_count=F('access_failed_count') + 1, updated_at=timezone.now())
        user.refresh_from_db(fields=['access_failed_count', 'lockout_end'])
        if user.is_locked_out:
            return SignInResult.LOCKED_OUT
        if user.access_failed_count < self.max_failed_attempts:
            return SignInResult.FAILED

        lockout_end = timezone.now() + self.lockout_duration
        rows.filter(access_failed_count__gte=self.max_failed_attempts).update(
            access_failed_count=0, lockout_end=lockout_end, updated_at=timezone.now()
        )
        user.refresh_from_db(fields=['access_failed_count', 'lockout_end'])
        logger.warning("User %s locked out until %s", user.username, user.lockout_end)
        return SignInResult.LOCKED_OUT

    def set_password(self, user: User, new_password: str) -> StoreResult:
        errors = self._password_errors(new_password, user)
        if errors:
            return StoreResult.failed(*errors)
        user.set_password(new_password)
        user.save(update_fields=['password', 'updated_at'])
        return StoreResult.success()

    def change_password(self, user, current_password, new_password) -> StoreResult:
        if not self.verify_password(user, current_password):
            return StoreResult.failed('Incorrect password.')
        return self.set_password(user, new_password)

    def generate_password_reset_token(self, user: User) -> str:
        return self.reset_tokens.make_token(user)

    def reset_password(self, user, token, new_password) -> StoreResult:
        if not token or not self.reset_tokens.check_token(user, token):
            return StoreResult.failed('Invalid token.')
        return self.set_password(user, new_password)

    # -----------------------------------------------------------------
    # E-mail confirmation
    # -----------------------------------------------------------------
    def generate_email_confirmation_token(self, user: User) -> str:
        return self.confirmation_tokens.make_token(user)

    def confirm_email(self, user, token) -> StoreResult:
        if not token or not self.confirmation_tokens.check_token(user, token):
            return StoreResult.failed('Invalid token.')
        user.email_confirmed = True
        user.save(update_fields=['email_confirmed', 'updated_at'])
        return StoreResult.success()

    @staticmethod
    def _password_errors(password: str, user: Optional[User]) -> List[str]:
        if not password:
            return ['Password is required.']
        try:
            validate_password(password, user=user)
        except ValidationError as e:
            return list(e.messages)
        return []
