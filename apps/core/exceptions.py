"""
Domain exceptions and the DRF exception handler.

Every domain error carries a stable machine code and an HTTP status, and is
rendered as {"error": {"code", "message", "details"}, "request_id"}.
"""
import logging
from django.db import InterfaceError, OperationalError
from django.http import JsonResponse
from django_ratelimit.exceptions import Ratelimited
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

RATE_LIMIT_RETRY_AFTER = 60


class GatehouseException(Exception):
    """Base exception for Gatehouse domain errors."""
    status_code = 400
    code = 'ERROR'
    retryable = False

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message()
        self.details = details or {}
        super().__init__(self.message)

    @classmethod
    def default_message(cls):
        return cls.__doc__.strip().splitlines()[0] if cls.__doc__ else cls.__name__

    def to_dict(self):
        """Error envelope body."""
        error = {
            'code': self.code,
            'message': self.message,
        }
        if self.details:
            error['details'] = self.details
        return {'error': error}


class NotFound(GatehouseException):
    """The requested resource does not exist."""
    status_code = 404
    code = 'NOT_FOUND'


class AlreadyAssigned(GatehouseException):
    """The user already holds this role in this scope."""
    status_code = 400
    code = 'ALREADY_ASSIGNED'


class NotAssigned(GatehouseException):
    """The user does not hold this role in this scope."""
    status_code = 404
    code = 'NOT_ASSIGNED'


class SystemRoleImmutable(GatehouseException):
    """System roles cannot be modified or deleted."""
    status_code = 403
    code = 'SYSTEM_ROLE_IMMUTABLE'


class ValidationFailed(GatehouseException):
    """The request failed validation."""
    status_code = 422
    code = 'VALIDATION_FAILED'


class InvalidRetention(GatehouseException):
    """The retention window is below the minimum allowed."""
    status_code = 422
    code = 'INVALID_RETENTION'


class StorageUnavailable(GatehouseException):
    """The backing store is unavailable. Retry later."""
    status_code = 503
    code = 'STORAGE_UNAVAILABLE'
    retryable = True


class AuthenticationError(GatehouseException):
    """Authentication failed."""
    status_code = 401
    code = 'AUTHENTICATION_FAILED'


def _request_ip(request):
    if request is None:
        return 'unknown'
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def _log_rate_limit(request):
    from apps.core.logging import SecurityLogger

    email = None
    data = getattr(request, 'data', None)
    if isinstance(data, dict):
        email = data.get('email')
    tenant = getattr(request, 'tenant', None)

    SecurityLogger.log_rate_limit_exceeded(
        endpoint=request.path,
        ip_address=_request_ip(request),
        user_email=email,
        tenant_id=str(tenant.id) if tenant else None,
        limit='Rate limit exceeded'
    )
    logger.warning(
        "Rate limit exceeded",
        extra={
            'request_id': getattr(request, 'request_id', None),
            'path': request.path,
            'method': request.method,
            'ip': _request_ip(request),
            'retry_after': RATE_LIMIT_RETRY_AFTER,
        }
    )


def _rate_limit_body(request_id):
    return {
        'error': {
            'code': 'RATE_LIMIT_EXCEEDED',
            'message': 'Rate limit exceeded. Please try again later.',
            'details': {'retry_after': RATE_LIMIT_RETRY_AFTER},
        },
        'request_id': request_id,
    }


def ratelimit_view(request, exception):
    """
    Custom view for django-ratelimit to return 429 instead of 403.

    Used for plain Django views; DRF views go through custom_exception_handler.
    """
    _log_rate_limit(request)
    response = JsonResponse(
        _rate_limit_body(getattr(request, 'request_id', None)),
        status=429
    )
    response['Retry-After'] = str(RATE_LIMIT_RETRY_AFTER)
    return response


def custom_exception_handler(exc, context):
    """
    Render every error in the shared envelope and log it at the right level.

    - GatehouseException: its own status and code; logged at warning
    - DRF ValidationError: 422 VALIDATION_FAILED with field errors
    - OperationalError / InterfaceError: 503 STORAGE_UNAVAILABLE
    - Ratelimited: 429 with Retry-After
    - Other DRF errors: their status, code derived from the DRF error code
    - Anything else: 500
    """
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None
    view = context.get('view')
    log_extra = {
        'request_id': request_id,
        'path': request.path if request else None,
        'method': request.method if request else None,
        'view': view.__class__.__name__ if view else None,
    }

    if isinstance(exc, Ratelimited):
        if request:
            _log_rate_limit(request)
        response = Response(
            _rate_limit_body(request_id),
            status=status.HTTP_429_TOO_MANY_REQUESTS
        )
        response['Retry-After'] = str(RATE_LIMIT_RETRY_AFTER)
        return response

    if isinstance(exc, GatehouseException):
        log_method = logger.error if exc.status_code >= 500 else logger.warning
        log_method(
            f"{exc.__class__.__name__}: {exc.message}",
            extra={**log_extra, 'error_code': exc.code}
        )
        body = exc.to_dict()
        body['request_id'] = request_id
        response = Response(body, status=exc.status_code)
        if exc.retryable:
            response['Retry-After'] = '5'
        return response

    if isinstance(exc, (OperationalError, InterfaceError)):
        logger.error(
            f"Storage unavailable: {exc}",
            extra=log_extra,
            exc_info=True
        )
        wrapped = StorageUnavailable(details={'reason': exc.__class__.__name__})
        body = wrapped.to_dict()
        body['request_id'] = request_id
        response = Response(body, status=wrapped.status_code)
        response['Retry-After'] = '5'
        return response

    if isinstance(exc, drf_exceptions.ValidationError):
        logger.info("Request validation failed", extra=log_extra)
        return Response(
            {
                'error': {
                    'code': ValidationFailed.code,
                    'message': 'The request failed validation.',
                    'details': exc.detail,
                },
                'request_id': request_id,
            },
            status=status.HTTP_422_UNPROCESSABLE_ENTITY
        )

    # Call DRF's default exception handler for the remaining API errors
    response = exception_handler(exc, context)

    if response is None:
        logger.error(
            f"Unhandled API exception: {exc.__class__.__name__}",
            extra={**log_extra, 'exception': str(exc)},
            exc_info=True
        )
        return Response(
            {
                'error': {
                    'code': 'INTERNAL_ERROR',
                    'message': 'An unexpected error occurred',
                },
                'request_id': request_id,
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    logger.info(
        f"API exception: {exc.__class__.__name__}",
        extra={**log_extra, 'status_code': response.status_code}
    )

    detail = getattr(exc, 'detail', str(exc))
    codes = exc.get_codes() if isinstance(exc, drf_exceptions.APIException) else None
    if isinstance(codes, str):
        code = codes.upper()
    elif response.status_code == status.HTTP_404_NOT_FOUND:
        code = NotFound.code
    else:
        code = 'ERROR'
    response.data = {
        'error': {
            'code': code,
            'message': str(detail),
        },
        'request_id': request_id,
    }
    return response
