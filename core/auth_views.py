"""
Authentication endpoints.

Thin DRF function views: each validates its input with a serializer,
calls one :class:`~core.services.auth.AuthService` operation and turns
the returned envelope into an HTTP response.  The service owns every
auth decision; status codes are the only thing decided here.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from core.errors import ErrorKind
from core.responses import ApiResponse
from core.serializers.auth import (
    ChangePasswordSerializer,
    ConfirmEmailSerializer,
    ForgotPasswordSerializer,
    LoginSerializer,
    RefreshTokenSerializer,
    RegisterSerializer,
    ResetPasswordSerializer,
    RevokeTokenSerializer,
)
from core.services.auth import FORGOT_PASSWORD_MESSAGE, AuthService


def get_auth_service() -> AuthService:
    return AuthService()


def client_ip(request) -> str:
    return request.META.get('REMOTE_ADDR') or 'unknown'


def _invalid(serializer) -> Response:
    errors = [
        f"{field}: {msg}"
        for field, msgs in serializer.errors.items()
        for msg in (msgs if isinstance(msgs, list) else [msgs])
    ]
    result = ApiResponse.failure(ErrorKind.VALIDATION_FAILURE, 'Validation failed.', errors)
    return Response(result.to_dict(), status=400)


def _respond(result: ApiResponse, failure_status: int = 400, statuses=None) -> Response:
    if result.ok:
        return Response(result.to_dict(), status=200)
    status = (statuses or {}).get(result.code, failure_status)
    return Response(result.to_dict(), status=status)


# ---------------------------------------------------------------------
# Registration & sign-in
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([AllowAny])
def register_view(request):
    s = RegisterSerializer(data=request.data)
    if not s.is_valid():
        return _invalid(s)
    result = get_auth_service().register(ip_address=client_ip(request), **s.validated_data)
    return _respond(result)

register_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    s = LoginSerializer(data=request.data)
    if not s.is_valid():
        return _invalid(s)
    result = get_auth_service().login(ip_address=client_ip(request), **s.validated_data)
    return _respond(result, failure_status=401)

# ScopedRateThrottle reads throttle_scope from the view instance
login_view.cls.throttle_scope = 'login'


# ---------------------------------------------------------------------
# Token lifecycle
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([AllowAny])
def refresh_token_view(request):
    s = RefreshTokenSerializer(data=request.data)
    if not s.is_valid():
        return _invalid(s)
    result = get_auth_service().refresh_token(
        access_token=s.validated_data['token'],
        refresh_token=s.validated_data['refresh_token'],
        ip_address=client_ip(request),
    )
    return _respond(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def revoke_token_view(request):
    """Revoke one of the caller's own refresh tokens."""
    s = RevokeTokenSerializer(data=request.data)
    if not s.is_valid():
        return _invalid(s)
    result = get_auth_service().revoke_token(
        refresh_token=s.validated_data['refresh_token'],
        ip_address=client_ip(request),
        user_id=request.user.id,
    )
    return _respond(result)


# ---------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([AllowAny])
def forgot_password_view(request):
    s = ForgotPasswordSerializer(data=request.data)
    if not s.is_valid():
        return _invalid(s)
    result = get_auth_service().forgot_password(email=s.validated_data['email'])
    if not result.ok:
        # the answer never depends on whether the address is known
        result = ApiResponse.success(True, FORGOT_PASSWORD_MESSAGE)
    return Response(result.to_dict(), status=200)

forgot_password_view.cls.throttle_scope = 'password'


@api_view(['POST'])
@permission_classes([AllowAny])
def reset_password_view(request):
    s = ResetPasswordSerializer(data=request.data)
    if not s.is_valid():
        return _invalid(s)
    result = get_auth_service().reset_password(
        email=s.validated_data['email'],
        token=s.validated_data['token'],
        new_password=s.validated_data['new_password'],
    )
    return _respond(result)

reset_password_view.cls.throttle_scope = 'password'


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_password_view(request):
    s = ChangePasswordSerializer(data=request.data)
    if not s.is_valid():
        return _invalid(s)
    result = get_auth_service().change_password(
        user_id=request.user.id,
        current_password=s.validated_data['current_password'],
        new_password=s.validated_data['new_password'],
    )
    return _respond(result)

change_password_view.cls.throttle_scope = 'password'


# ---------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me_view(request):
    result = get_auth_service().get_user_info(user_id=request.user.id)
    return _respond(result, statuses={ErrorKind.USER_NOT_FOUND: 404})


@api_view(['GET'])
@permission_classes([AllowAny])
def confirm_email_view(request):
    s = ConfirmEmailSerializer(data={
        'user_id': request.query_params.get('userId'),
        'token': request.query_params.get('token'),
    })
    if not s.is_valid():
        return _invalid(s)
    result = get_auth_service().confirm_email(**s.validated_data)
    return _respond(result)
