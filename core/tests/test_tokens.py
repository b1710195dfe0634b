import uuid
from datetime import timedelta

import jwt
import pytest
from django.utils import timezone

from core.errors import ConfigurationError
from core.models import Roles, User
from core.services.tokens import JwtSettings, TokenCodec, get_token_codec

SECRET = 'unit-test-signing-key-0123456789abcdef'


def make_codec(**overrides):
    values = dict(secret_key=SECRET, issuer='HealthLink.API', audience='HealthLink.Client')
    values.update(overrides)
    return TokenCodec(JwtSettings(**values))


def make_user(**kw):
    values = dict(username='alice', email='alice@x.com', full_name='Alice Liddell', is_active=True)
    values.update(kw)
    return User(**values)


def test_verify_reproduces_issued_claims():
    codec = make_codec()
    u = make_user()
    token = codec.issue_access_token(u, [Roles.DOCTOR, Roles.HOSPITAL_ADMIN])
    p = codec.verify(token)
    assert p is not None
    assert p.user_id == u.pk
    assert p.username == 'alice'
    assert p.email == 'alice@x.com'
    assert p.full_name == 'Alice Liddell'
    assert p.is_active is True
    assert p.roles == {Roles.HOSPITAL_ADMIN, Roles.DOCTOR}
    assert p.jti
    assert p.has_role(Roles.DOCTOR)
    assert not p.has_role(Roles.PATIENT)


def test_each_token_gets_its_own_jti():
    codec = make_codec()
    u = make_user()
    a = codec.verify(codec.issue_access_token(u, [Roles.PATIENT]))
    b = codec.verify(codec.issue_access_token(u, [Roles.PATIENT]))
    assert a.jti != b.jti


def test_profile_link_claims_are_emitted_only_when_linked():
    codec = make_codec()
    u = make_user()
    u.patient_id = uuid.uuid4()
    p = codec.verify(codec.issue_access_token(u, [Roles.PATIENT]))
    assert p.patient_id == str(u.patient_id)
    assert p.doctor_id is None
    assert 'hospitalId' not in p.claims


def test_issue_without_roles_is_refused():
    with pytest.raises(ConfigurationError):
        make_codec().issue_access_token(make_user(), [])


def test_expired_token_fails_verify_but_keeps_its_subject():
    codec = make_codec()
    u = make_user()
    token = codec.issue_access_token(u, [Roles.PATIENT], now=timezone.now() - timedelta(hours=2))
    assert codec.verify(token) is None
    assert codec.extract_user_id(token) is None
    assert codec.extract_user_id(token, allow_expired=True) == u.pk
    assert codec.principal_from_expired_token(token).roles == {Roles.PATIENT}


def test_tokens_from_another_key_or_issuer_are_rejected():
    u = make_user()
    foreign = make_codec(secret_key='some-other-signing-key-abcdefghijkl').issue_access_token(u, [Roles.PATIENT])
    other_iss = make_codec(issuer='Someone.Else').issue_access_token(u, [Roles.PATIENT])
    codec = make_codec()
    for token in (foreign, other_iss):
        assert codec.verify(token) is None
        assert codec.principal_from_expired_token(token) is None


def test_algorithm_is_pinned():
    codec = make_codec()
    now = int(timezone.now().timestamp())
    payload = {
        'sub': str(uuid.uuid4()), 'jti': 'x', 'iat': now, 'exp': now + 600,
        'iss': 'HealthLink.API', 'aud': 'HealthLink.Client', 'role': [Roles.SYSTEM_ADMIN],
    }
    forged = jwt.encode(payload, SECRET + SECRET, algorithm='HS512')
    assert codec.verify(forged) is None
    unsigned = jwt.encode(payload, None, algorithm='none')
    assert codec.verify(unsigned) is None
    assert codec.principal_from_expired_token(unsigned) is None


@pytest.mark.parametrize('value', [None, '', 'not-a-jwt', 'a.b.c'])
def test_garbage_is_rejected_quietly(value):
    codec = make_codec()
    assert codec.verify(value) is None
    assert codec.principal_from_expired_token(value) is None
    assert codec.extract_expiry(value) is None


def test_extract_expiry_matches_configured_lifetime():
    codec = make_codec(access_token_minutes=30)
    before = timezone.now()
    exp = codec.extract_expiry(codec.issue_access_token(make_user(), [Roles.PATIENT]))
    assert timedelta(minutes=29) <= exp - before <= timedelta(minutes=31)


@pytest.mark.parametrize('overrides', [
    {'secret_key': ''},
    {'secret_key': 'short'},
    {'issuer': ' '},
    {'audience': ''},
    {'access_token_minutes': 0},
    {'refresh_token_days': -1},
])
def test_invalid_configuration_fails_at_construction(overrides):
    with pytest.raises(ConfigurationError):
        make_codec(**overrides)


def test_opaque_secrets_are_long_and_unique():
    values = {TokenCodec.generate_opaque_secret() for _ in range(50)}
    assert len(values) == 50
    assert all(80 <= len(v) <= 128 for v in values)


def test_codec_is_built_once_from_settings(settings):
    settings.JWT_ISSUER = 'Configured.Issuer'
    codec = get_token_codec()
    assert codec is get_token_codec()
    assert codec.config.issuer == 'Configured.Issuer'
