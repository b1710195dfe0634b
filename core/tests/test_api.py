"""
HTTP tests for the authentication endpoints.

These exercise routing, input validation, bearer authentication and the
status codes each endpoint answers with, using DRF's APIClient.
"""
import os
import subprocess
import sys

import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from core.models import RefreshToken, User

from .conftest import PASSWORD

pytestmark = pytest.mark.django_db


def register(client, **kw):
    body = {'username': 'alice', 'email': 'alice@x.com', 'password': PASSWORD,
            'full_name': 'Alice Liddell', 'role': 'Patient'}
    body.update(kw)
    return client.post(reverse('register_view'), body, format='json')


def bearer(client, token):
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
    return client


def test_register_and_me(api_client):
    r = register(api_client)
    assert r.status_code == 200
    assert r.data['ok'] is True
    data = r.data['data']
    assert data['token_type'] == 'Bearer'
    assert data['user']['roles'] == ['Patient']

    me = bearer(api_client, data['access_token']).get(reverse('me_view'))
    assert me.status_code == 200
    assert me.data['data']['username'] == 'alice'
    assert me.data['data']['email_confirmed'] is False


def test_register_validation_failure(api_client):
    r = api_client.post(reverse('register_view'), {'username': 'x'}, format='json')
    assert r.status_code == 400
    assert r.data['code'] == 'ValidationFailure'
    assert any(e.startswith('email:') for e in r.data['errors'])


def test_register_invalid_role(api_client):
    r = register(api_client, role='NotARole')
    assert r.status_code == 400
    assert r.data['code'] == 'InvalidRole'
    assert not User.objects.filter(username='alice').exists()


def test_login_statuses(api_client):
    register(api_client)
    ok = api_client.post(reverse('login_view'), {'username_or_email': 'alice@x.com', 'password': PASSWORD}, format='json')
    assert ok.status_code == 200
    assert ok.data['data']['access_token']

    bad = api_client.post(reverse('login_view'), {'username_or_email': 'alice', 'password': 'Wrong#123'}, format='json')
    assert bad.status_code == 401
    assert bad.data['code'] == 'InvalidCredentials'

    malformed = api_client.post(reverse('login_view'), {'username_or_email': 'alice'}, format='json')
    assert malformed.status_code == 400


def test_login_ignores_extra_role_field(api_client):
    register(api_client)
    r = api_client.post(reverse('login_view'),
                        {'username_or_email': 'alice', 'password': PASSWORD, 'role': 'SystemAdmin'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['user']['roles'] == ['Patient']


def test_lockout_over_http(api_client):
    register(api_client)
    for _ in range(5):
        api_client.post(reverse('login_view'), {'username_or_email': 'alice', 'password': 'Wrong#123'}, format='json')
    r = api_client.post(reverse('login_view'), {'username_or_email': 'alice', 'password': PASSWORD}, format='json')
    assert r.status_code == 401
    assert r.data['code'] == 'AccountLocked'


def test_refresh_rotation(api_client):
    tokens = register(api_client).data['data']
    body = {'token': tokens['access_token'], 'refresh_token': tokens['refresh_token']}
    first = api_client.post(reverse('refresh_token_view'), body, format='json')
    assert first.status_code == 200
    assert first.data['data']['refresh_token'] != tokens['refresh_token']

    replay = api_client.post(reverse('refresh_token_view'), body, format='json')
    assert replay.status_code == 400
    assert replay.data['code'] == 'RefreshTokenNotActive'


def test_revoke_requires_bearer(api_client):
    tokens = register(api_client).data['data']
    anon = api_client.post(reverse('revoke_token_view'), {'refresh_token': tokens['refresh_token']}, format='json')
    assert anon.status_code == 401
    assert anon['WWW-Authenticate'] == 'Bearer'
    assert anon.data['ok'] is False

    r = bearer(api_client, tokens['access_token']).post(
        reverse('revoke_token_view'), {'refresh_token': tokens['refresh_token']}, format='json')
    assert r.status_code == 200
    assert RefreshToken.objects.get(token=tokens['refresh_token']).is_revoked


def test_invalid_bearer_is_rejected(api_client):
    r = bearer(api_client, 'garbage').get(reverse('me_view'))
    assert r.status_code == 401


def test_me_for_deleted_user(api_client):
    tokens = register(api_client).data['data']
    User.objects.filter(username='alice').delete()
    r = bearer(api_client, tokens['access_token']).get(reverse('me_view'))
    assert r.status_code == 404
    assert r.data['code'] == 'UserNotFound'


def test_forgot_password_always_200(api_client):
    register(api_client)
    known = api_client.post(reverse('forgot_password_view'), {'email': 'alice@x.com'}, format='json')
    unknown = api_client.post(reverse('forgot_password_view'), {'email': 'ghost@x.com'}, format='json')
    assert known.status_code == unknown.status_code == 200
    assert known.data == unknown.data


def test_reset_password_bad_token(api_client):
    register(api_client)
    r = api_client.post(reverse('reset_password_view'), {
        'email': 'alice@x.com', 'token': 'bogus', 'new_password': 'N3w!pass', 'confirm_password': 'N3w!pass',
    }, format='json')
    assert r.status_code == 400
    assert r.data['code'] == 'ResetFailed'


def test_change_password_flow(api_client):
    tokens = register(api_client).data['data']
    anon = APIClient().post(reverse('change_password_view'), {}, format='json')
    assert anon.status_code == 401

    client = bearer(api_client, tokens['access_token'])
    mismatch = client.post(reverse('change_password_view'), {
        'current_password': PASSWORD, 'new_password': 'N3w!pass', 'confirm_password': 'other',
    }, format='json')
    assert mismatch.status_code == 400
    assert mismatch.data['code'] == 'ValidationFailure'

    ok = client.post(reverse('change_password_view'), {
        'current_password': PASSWORD, 'new_password': 'N3w!pass', 'confirm_password': 'N3w!pass',
    }, format='json')
    assert ok.status_code == 200


def test_confirm_email_query_parameters(api_client):
    tokens = register(api_client).data['data']
    url = reverse('confirm_email_view')
    bad = api_client.get(url, {'userId': tokens['user']['id'], 'token': 'bogus'})
    assert bad.status_code == 400
    assert bad.data['code'] == 'ConfirmationFailed'
    missing = api_client.get(url)
    assert missing.status_code == 400
    assert missing.data['code'] == 'ValidationFailure'


def test_healthz(api_client):
    r = api_client.get(reverse('healthz'))
    assert r.status_code == 200
    assert r.json()['ok'] is True


@pytest.mark.parametrize('module', ['core.exceptions', 'core.services.auth', 'healthlink.urls'])
def test_entry_points_import_in_a_fresh_interpreter(module, settings):
    # import order matters here, so the already-warm test process cannot show it
    env = dict(os.environ, DJANGO_SETTINGS_MODULE='healthlink.settings')
    code = f"import django; django.setup(); import {module}"
    proc = subprocess.run([sys.executable, '-c', code], cwd=settings.BASE_DIR, env=env,
                          capture_output=True, text=True, timeout=120)
    assert proc.returncode == 0, proc.stderr
