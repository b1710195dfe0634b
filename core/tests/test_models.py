import pytest
from django.core.management import call_command

from core.models import Doctor, Hospital, Patient, ProfileLinkError, Roles, User
from core.services.auth import AuthService

pytestmark = pytest.mark.django_db


def test_roles_canonical_spelling():
    assert Roles.canonical(' patient ') == Roles.PATIENT
    assert Roles.canonical('SYSTEMADMIN') == Roles.SYSTEM_ADMIN
    assert Roles.canonical('NotARole') is None
    assert not Roles.is_valid(None)


def test_user_links_to_one_profile_only():
    hospital = Hospital.objects.create(name='St. Mary')
    u = User.objects.create_user(username='doc', email='doc@x.com', password='x')
    u.link_to_doctor(Doctor.objects.create(full_name='Dr. Who', hospital=hospital))
    u.save()
    with pytest.raises(ProfileLinkError):
        u.link_to_patient(Patient.objects.create(full_name='Pat'))
    with pytest.raises(ProfileLinkError):
        u.link_to_hospital(hospital)


def test_linked_profile_ids_reach_the_token():
    u = User.objects.create_user(username='pat', email='pat@x.com', password='x', full_name='Pat')
    u.link_to_patient(Patient.objects.create(full_name='Pat'))
    u.save()
    u.role_memberships.create(role=Roles.PATIENT)
    service = AuthService()
    token = service.codec.issue_access_token(u, service.store.get_roles(u))
    assert service.codec.verify(token).patient_id == str(u.patient_id)
    assert service.get_user_info(user_id=u.pk).data.patient_id == str(u.patient_id)


def test_update_profile_rejects_blanks():
    u = User(username='x', email='x@x.com')
    with pytest.raises(ValueError):
        u.update_profile('', 'x@x.com')
    u.update_profile('New Name', 'new@x.com')
    assert (u.full_name, u.email) == ('New Name', 'new@x.com')


def test_ensure_test_users_is_idempotent():
    call_command('ensure_test_users')
    call_command('ensure_test_users')
    assert User.objects.count() == len(Roles.ALL)
    service = AuthService()
    for u in User.objects.all():
        assert len(service.store.get_roles(u)) == 1
        assert service.login(username_or_email=u.username, password='Passw0rd!').ok


def test_purge_refresh_tokens_command(user):
    from core.models import RefreshToken
    service = AuthService()
    token = service.ledger.issue(user, None)
    service.ledger.mark_used(token)
    RefreshToken.objects.filter(pk=token.pk).update(created_at=token.created_at.replace(year=2000))
    call_command('purge_refresh_tokens', '--days', '30')
    assert not RefreshToken.objects.filter(pk=token.pk).exists()
