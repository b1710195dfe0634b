"""
DRF exception handler.

Renders framework errors (authentication, throttling, parsing,
validation) and anything unhandled in the same envelope the auth
service returns.
"""
from __future__ import annotations

import logging

from django.conf import settings
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from core.errors import ErrorKind

logger = logging.getLogger(__name__)

PASSTHROUGH_HEADERS = ('WWW-Authenticate', 'Retry-After')


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.error("Unhandled API exception", exc_info=exc)
        errors = [str(exc)] if settings.DEBUG else []
        return Response(
            {'ok': False, 'message': 'Internal server error.', 'data': None, 'errors': errors,
             'code': ErrorKind.INTERNAL_ERROR.value},
            status=500,
        )
    detail = None
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    code = getattr(exc, 'default_code', 'api_error')
    if isinstance(exc, ValidationError):
        code = ErrorKind.VALIDATION_FAILURE.value
    if isinstance(detail, dict):
        errors = [f"{field}: {msg}" for field, msgs in detail.items() for msg in _as_list(msgs)]
        message = 'Validation failed.'
    else:
        errors = [str(m) for m in _as_list(detail)]
        message = errors[0] if errors else 'Request failed.'
    return Response(
        {'ok': False, 'message': message, 'data': None, 'errors': errors, 'code': code},
        status=resp.status_code,
        headers={name: resp[name] for name in PASSTHROUGH_HEADERS if resp.has_header(name)},
    )


def _as_list(value):
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]
