"""
Database models for the HealthLink backend.

The auth core persists users, their role memberships and the refresh
tokens issued to them.  Patient, doctor and hospital rows are kept
deliberately small: they exist so that a user account can be linked to
exactly one clinical profile, while their full CRUD lives elsewhere.
"""
from __future__ import annotations

import uuid
from typing import Optional

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


class Roles:
    """Closed set of roles a user may hold."""
    PATIENT = 'Patient'
    DOCTOR = 'Doctor'
    HOSPITAL_ADMIN = 'HospitalAdmin'
    SYSTEM_ADMIN = 'SystemAdmin'

    ALL = (PATIENT, DOCTOR, HOSPITAL_ADMIN, SYSTEM_ADMIN)
    CHOICES = [
        (PATIENT, 'Patient'),
        (DOCTOR, 'Doctor'),
        (HOSPITAL_ADMIN, 'Hospital Administrator'),
        (SYSTEM_ADMIN, 'System Administrator'),
    ]

    @classmethod
    def canonical(cls, role: Optional[str]) -> Optional[str]:
        """Return the stored spelling of ``role`` (case-insensitive), or None."""
        if not role:
            return None
        wanted = role.strip().lower()
        for name in cls.ALL:
            if name.lower() == wanted:
                return name
        return None

    @classmethod
    def is_valid(cls, role: Optional[str]) -> bool:
        return cls.canonical(role) is not None


class ProfileLinkError(ValueError):
    """Raised when a user is linked to a second kind of clinical profile."""


class Hospital(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class Doctor(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    full_name = models.CharField(max_length=200)
    hospital = models.ForeignKey(
        Hospital, null=True, blank=True, on_delete=models.SET_NULL, related_name='doctors'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.full_name


class Patient(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    full_name = models.CharField(max_length=200)
    date_of_birth = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.full_name


class User(AbstractUser):
    """Account used for authentication.

    A user is identified by a UUID and may be linked to at most one
    clinical profile (patient, doctor *or* hospital).  Sign-in lockout
    state (``access_failed_count``/``lockout_end``) is stored on the row
    so that it survives process restarts and is shared by all workers.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField('email address', unique=True)
    full_name = models.CharField(max_length=200, blank=True)
    email_confirmed = models.BooleanField(default=False)

    access_failed_count = models.PositiveIntegerField(default=0)
    lockout_end = models.DateTimeField(null=True, blank=True)

    # Each profile link is exclusive of the other two, see link_to_*
    patient = models.OneToOneField(
        Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='user'
    )
    doctor = models.OneToOneField(
        Doctor, null=True, blank=True, on_delete=models.SET_NULL, related_name='user'
    )
    hospital = models.ForeignKey(
        Hospital, null=True, blank=True, on_delete=models.SET_NULL, related_name='admin_users'
    )

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.username} <{self.email}>"

    # -----------------------------------------------------------------
    # Domain behaviour
    # -----------------------------------------------------------------
    def update_profile(self, full_name: str, email: str) -> None:
        if not (full_name or '').strip():
            raise ValueError('Full name cannot be empty.')
        if not (email or '').strip():
            raise ValueError('Email cannot be empty.')
        self.full_name = full_name
        self.email = email

    def _ensure_unlinked(self, *others) -> None:
        if any(other is not None for other in others):
            raise ProfileLinkError('User is already linked to another entity.')

    def link_to_patient(self, patient: Patient) -> None:
        self._ensure_unlinked(self.doctor_id, self.hospital_id)
        self.patient = patient

    def link_to_doctor(self, doctor: Doctor) -> None:
        self._ensure_unlinked(self.patient_id, self.hospital_id)
        self.doctor = doctor

    def link_to_hospital(self, hospital: Hospital) -> None:
        self._ensure_unlinked(self.patient_id, self.doctor_id)
        self.hospital = hospital

    def record_login(self) -> None:
        self.last_login = timezone.now()

    def activate(self) -> None:
        self.is_active = True

    def deactivate(self) -> None:
        self.is_active = False

    @property
    def is_locked_out(self) -> bool:
        return bool(self.lockout_end and self.lockout_end > timezone.now())


class UserRole(models.Model):
    """Membership of a user in one of :class:`Roles`."""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='role_memberships')
    role = models.CharField(max_length=20, choices=Roles.CHOICES)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [('user', 'role')]

    def __str__(self) -> str:
        return f"{self.user.username} as {self.role}"


class RefreshToken(models.Model):
    """An opaque refresh token issued to a user.

    Lifecycle is active -> used (consumed by rotation) or active ->
    revoked (explicit invalidation).  Both end states are terminal and
    never combined; rotation always creates a new row.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='refresh_tokens')
    token = models.CharField(max_length=128, unique=True)
    expires_at = models.DateTimeField(db_index=True)
    created_at = models.DateTimeField(default=timezone.now)
    created_by_ip = models.CharField(max_length=64, blank=True)

    is_used = models.BooleanField(default=False)
    used_at = models.DateTimeField(null=True, blank=True)
    replaced_by_token = models.CharField(max_length=128, blank=True)

    is_revoked = models.BooleanField(default=False)
    revoked_at = models.DateTimeField(null=True, blank=True)
    revoked_by_ip = models.CharField(max_length=64, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=['user', 'created_at'], name='core_refres_user_id_7c5a1e_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~(models.Q(is_used=True) & models.Q(is_revoked=True)),
                name='refresh_token_single_terminal_state',
            ),
        ]

    def __str__(self) -> str:
        return f"RefreshToken({self.user_id}, {self.state})"

    @property
    def is_expired(self) -> bool:
        return timezone.now() >= self.expires_at

    @property
    def is_active(self) -> bool:
        return not self.is_used and not self.is_revoked and not self.is_expired

    @property
    def state(self) -> str:
        if self.is_used:
            return 'used'
        if self.is_revoked:
            return 'revoked'
        if self.is_expired:
            return 'expired'
        return 'active'


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.CharField(max_length=64, blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='core_audite_action_5b0e2f_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='core_audite_object__9d3c41_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.action} ({self.created_at:%Y-%m-%d %H:%M:%S})"
