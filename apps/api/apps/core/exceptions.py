"""
API error taxonomy and the DRF exception handler.

Every error leaves the API as:

    {"success": false, "error": {"code": "...", "message": "...", "details": ...}}
"""
import logging

from django.core.exceptions import (
    PermissionDenied as DjangoPermissionDenied,
    ValidationError as DjangoValidationError,
)
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .observability import metrics

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that carry a machine-readable code."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'BAD_REQUEST'
    default_message = 'Bad request'

    def __init__(self, message=None, code=None, details=None, status_code=None):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self):
        error = {'code': self.code, 'message': self.message}
        if self.details is not None:
            error['details'] = self.details
        return error


class DomainValidationError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'VALIDATION_ERROR'
    default_message = 'Validation failed'


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'NOT_FOUND'
    default_message = 'Resource not found'


class ConflictError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'CONFLICT'
    default_message = 'Conflict'


class PermissionDeniedError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = 'PERMISSION_DENIED'
    default_message = 'You do not have permission to perform this action'


def error_payload(code, message, details=None):
    error = {'code': code, 'message': message}
    if details is not None:
        error['details'] = details
    return {'success': False, 'error': error}


def _django_validation_details(exc):
    if hasattr(exc, 'message_dict'):
        return exc.message_dict
    return {'non_field_errors': exc.messages}


def _first_message(details):
    """Pick a human message out of DRF's nested error structure."""
    if isinstance(details, dict):
        for key, value in details.items():
            message = _first_message(value)
            if message:
                return message if key == 'non_field_errors' else f'{key}: {message}'
        return None
    if isinstance(details, (list, tuple)):
        for value in details:
            message = _first_message(value)
            if message:
                return message
        return None
    return str(details) if details else None


# DRF exception class -> envelope code
_DRF_CODE_MAP = {
    exceptions.NotFound: 'NOT_FOUND',
    exceptions.NotAuthenticated: 'UNAUTHORIZED',
    exceptions.AuthenticationFailed: 'UNAUTHORIZED',
    exceptions.PermissionDenied: 'PERMISSION_DENIED',
    exceptions.MethodNotAllowed: 'METHOD_NOT_ALLOWED',
    exceptions.Throttled: 'THROTTLED',
    exceptions.ParseError: 'VALIDATION_ERROR',
    exceptions.UnsupportedMediaType: 'VALIDATION_ERROR',
}


def api_exception_handler(exc, context):
    """
    Convert any exception raised in a DRF view into the error envelope.

    - ApiError: its own code/status
    - DRF / Django ValidationError: 400 VALIDATION_ERROR with field details
    - NotFound / Http404: 404 NOT_FOUND
    - auth failures: 401 UNAUTHORIZED, 403 PERMISSION_DENIED
    - anything else: logged, 500 INTERNAL_ERROR
    """
    view = context.get('view')
    location = view.__class__.__name__ if view is not None else 'unknown'

    if isinstance(exc, ApiError):
        return Response(
            {'success': False, 'error': exc.to_dict()},
            status=exc.status_code,
        )

    if isinstance(exc, DjangoValidationError):
        details = _django_validation_details(exc)
        return Response(
            error_payload('VALIDATION_ERROR', _first_message(details) or 'Validation failed', details),
            status=status.HTTP_400_BAD_REQUEST,
        )

    if isinstance(exc, exceptions.ValidationError):
        details = exc.detail
        return Response(
            error_payload('VALIDATION_ERROR', _first_message(details) or 'Validation failed', details),
            status=status.HTTP_400_BAD_REQUEST,
        )

    if isinstance(exc, Http404):
        exc = exceptions.NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = exceptions.PermissionDenied()

    # Let DRF set auth headers (WWW-Authenticate, Retry-After)
    response = exception_handler(exc, context)
    if response is not None:
        code = next(
            (mapped for cls, mapped in _DRF_CODE_MAP.items() if isinstance(exc, cls)),
            str(getattr(exc, 'default_code', 'error')).upper(),
        )
        response.data = error_payload(code, str(exc.detail))
        return response

    metrics.exceptions_total.labels(
        exception_type=exc.__class__.__name__,
        location=location,
    ).inc()
    logger.error(
        f'Unhandled API exception: {exc.__class__.__name__}',
        exc_info=exc,
        extra={
            'event': 'api_unhandled_exception',
            'exception_type': exc.__class__.__name__,
            'view': location,
        }
    )
    return Response(
        error_payload('INTERNAL_ERROR', 'An unexpected error occurred'),
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
