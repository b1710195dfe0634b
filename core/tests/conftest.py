import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from core.models import Roles, User
from core.services.auth import AuthService
from core.services.tokens import get_token_codec

PASSWORD = 'Alice#2024'


@pytest.fixture(autouse=True)
def _fresh_state(settings):
    # MD5 keeps hashing out of the test runtime; throttles live in the cache
    settings.PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
    cache.clear()
    get_token_codec.cache_clear()
    yield
    get_token_codec.cache_clear()


@pytest.fixture
def auth_service():
    return AuthService()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user(db):
    u = User.objects.create_user(username='bob', email='bob@x.com', password=PASSWORD, full_name='Bob Builder')
    u.role_memberships.create(role=Roles.DOCTOR)
    return u


@pytest.fixture
def alice(auth_service):
    """Registration result (``AuthResult``) for alice, a patient."""
    result = auth_service.register(
        username='alice', email='alice@x.com', password=PASSWORD, full_name='Alice Liddell', role='Patient'
    )
    assert result.ok, result.errors
    return result.data
