"""
URL mappings for the HealthLink API.

Trailing slashes are deliberately omitted to match the published
client contract.
"""
from django.urls import path

from .views import health
from .auth_views import (
    change_password_view,
    confirm_email_view,
    forgot_password_view,
    login_view,
    me_view,
    refresh_token_view,
    register_view,
    reset_password_view,
    revoke_token_view,
)

urlpatterns = [
    path('healthz', health.healthz, name='healthz'),

    path('api/auth/register', register_view, name='register_view'),
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh-token', refresh_token_view, name='refresh_token_view'),
    path('api/auth/revoke-token', revoke_token_view, name='revoke_token_view'),
    path('api/auth/forgot-password', forgot_password_view, name='forgot_password_view'),
    path('api/auth/reset-password', reset_password_view, name='reset_password_view'),
    path('api/auth/change-password', change_password_view, name='change_password_view'),
    path('api/auth/me', me_view, name='me_view'),
    path('api/auth/confirm-email', confirm_email_view, name='confirm_email_view'),
]
