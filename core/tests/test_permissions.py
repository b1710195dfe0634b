import pytest
from rest_framework.test import APIRequestFactory

from core.authentication import JwtAuthentication, PrincipalUser
from core.models import Roles, User
from core.permissions import (
    IsActiveUser,
    IsAdminRole,
    IsDoctorRole,
    IsHospitalAdminRole,
    IsMedicalStaff,
    IsPatientRole,
    IsSystemAdminRole,
)
from core.services.tokens import get_token_codec


def authenticated_request(*roles, is_active=True):
    user = User(username='u', email='u@x.com', full_name='U', is_active=is_active)
    token = get_token_codec().issue_access_token(user, roles)
    request = APIRequestFactory().get('/', HTTP_AUTHORIZATION=f'Bearer {token}')
    request.user, request.auth = JwtAuthentication().authenticate(request)
    return request


def test_authentication_yields_token_principal():
    request = authenticated_request(Roles.DOCTOR)
    assert isinstance(request.user, PrincipalUser)
    assert request.user.is_authenticated
    assert request.user.roles == {Roles.DOCTOR}
    assert request.auth.user_id == request.user.id


def test_missing_or_foreign_scheme_is_not_handled():
    factory = APIRequestFactory()
    assert JwtAuthentication().authenticate(factory.get('/')) is None
    assert JwtAuthentication().authenticate(factory.get('/', HTTP_AUTHORIZATION='Token abc')) is None


@pytest.mark.parametrize('permission, allowed', [
    (IsPatientRole, {Roles.PATIENT}),
    (IsDoctorRole, {Roles.DOCTOR}),
    (IsHospitalAdminRole, {Roles.HOSPITAL_ADMIN}),
    (IsSystemAdminRole, {Roles.SYSTEM_ADMIN}),
    (IsAdminRole, {Roles.HOSPITAL_ADMIN, Roles.SYSTEM_ADMIN}),
    (IsMedicalStaff, {Roles.DOCTOR, Roles.HOSPITAL_ADMIN}),
])
def test_role_policies(permission, allowed):
    for role in Roles.ALL:
        request = authenticated_request(role)
        assert permission().has_permission(request, None) is (role in allowed), role


def test_active_user_policy():
    assert IsActiveUser().has_permission(authenticated_request(Roles.PATIENT), None)
    assert not IsActiveUser().has_permission(authenticated_request(Roles.PATIENT, is_active=False), None)
