"""
Role based permission classes.

Roles come from the verified access token (``request.auth``), so these
checks never touch the database.
"""
from rest_framework.permissions import BasePermission

from core.models import Roles


def _roles(request) -> frozenset:
    principal = getattr(request, "auth", None)
    return getattr(principal, "roles", None) or frozenset()


class HasAnyRole(BasePermission):
    roles: tuple = ()

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated):
            return False
        return bool(_roles(request) & set(self.roles))


class IsActiveUser(BasePermission):
    """Token says the account was active when it was issued."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        principal = getattr(request, "auth", None)
        return bool(principal and getattr(principal, "is_active", False))


class IsPatientRole(HasAnyRole):
    roles = (Roles.PATIENT,)


class IsDoctorRole(HasAnyRole):
    roles = (Roles.DOCTOR,)


class IsHospitalAdminRole(HasAnyRole):
    roles = (Roles.HOSPITAL_ADMIN,)


class IsSystemAdminRole(HasAnyRole):
    roles = (Roles.SYSTEM_ADMIN,)


class IsAdminRole(HasAnyRole):
    """Hospital or system administrators."""
    roles = (Roles.HOSPITAL_ADMIN, Roles.SYSTEM_ADMIN)


class IsMedicalStaff(HasAnyRole):
    roles = (Roles.DOCTOR, Roles.HOSPITAL_ADMIN)
