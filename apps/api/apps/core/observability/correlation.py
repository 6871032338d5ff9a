"""
Request correlation middleware.

Generates/propagates X-Request-ID and injects it into logs.
"""
import uuid
import time
import logging
from django.utils.deprecation import MiddlewareMixin
from threading import local

# Thread-local storage for request context
_request_context = local()

logger = logging.getLogger(__name__)


def get_request_id():
    """Get current request ID from thread-local storage."""
    return getattr(_request_context, 'request_id', None)


def get_trace_id():
    """Get current trace ID from thread-local storage."""
    return getattr(_request_context, 'trace_id', None)


def get_user_id():
    """Get current user ID from thread-local storage."""
    return getattr(_request_context, 'user_id', None)


def get_user_roles():
    """Get current user roles from thread-local storage."""
    return getattr(_request_context, 'user_roles', [])


def get_clinic_id():
    """Get current clinic (tenant) ID from thread-local storage."""
    return getattr(_request_context, 'clinic_id', None)


def bind_user_context(user):
    """
    Store user, roles and clinic in the correlation context.

    Called once the user is known. With token auth that happens inside the
    DRF view, after this middleware's process_request has already run.
    """
    if user is None or not user.is_authenticated:
        _request_context.user_id = None
        _request_context.user_roles = []
        _request_context.clinic_id = None
        return

    _request_context.user_id = str(user.id)
    _request_context.user_roles = list(
        user.user_roles.values_list('role__name', flat=True)
    )
    _request_context.clinic_id = str(user.clinic_id) if user.clinic_id else None


class RequestCorrelationMiddleware(MiddlewareMixin):
    """
    Middleware to handle request correlation.

    - Generates/propagates X-Request-ID
    - Extracts trace context from headers
    - Stores context in thread-local for logging
    - Adds correlation headers to response
    - Tracks request duration and HTTP metrics
    """

    REQUEST_ID_HEADER = 'HTTP_X_REQUEST_ID'
    TRACE_ID_HEADER = 'HTTP_X_TRACE_ID'
    SPAN_ID_HEADER = 'HTTP_X_SPAN_ID'

    def process_request(self, request):
        """Process incoming request and setup correlation context."""
        request_id = request.META.get(self.REQUEST_ID_HEADER) or str(uuid.uuid4())
        trace_id = request.META.get(self.TRACE_ID_HEADER)
        span_id = request.META.get(self.SPAN_ID_HEADER)

        request.request_id = request_id
        request.trace_id = trace_id
        request.span_id = span_id
        request.start_time = time.time()

        _request_context.request_id = request_id
        _request_context.trace_id = trace_id
        _request_context.span_id = span_id

        # Session-authenticated users are already known here
        bind_user_context(getattr(request, 'user', None))

    def process_response(self, request, response):
        """Add correlation headers to response."""
        from .metrics import metrics

        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id

        if getattr(request, 'trace_id', None):
            response['X-Trace-ID'] = request.trace_id

        if hasattr(request, 'start_time'):
            duration = time.time() - request.start_time
            route = getattr(getattr(request, 'resolver_match', None), 'route', None) or 'unmatched'

            metrics.http_requests_total.labels(
                path=route,
                method=request.method,
                status=str(response.status_code),
            ).inc()
            metrics.http_request_duration_seconds.labels(
                path=route,
                method=request.method,
            ).observe(duration)

            logger.info(
                'Request completed',
                extra={
                    'event': 'http_request_completed',
                    'path': request.path,
                    'method': request.method,
                    'status_code': response.status_code,
                    'duration_ms': round(duration * 1000, 2),
                }
            )

        clear_request_context()
        return response

    def process_exception(self, request, exception):
        """Log exceptions with correlation context."""
        duration_ms = 0
        if hasattr(request, 'start_time'):
            duration_ms = (time.time() - request.start_time) * 1000

        logger.error(
            f'Request failed: {exception.__class__.__name__}',
            exc_info=True,
            extra={
                'event': 'http_request_exception',
                'path': request.path,
                'method': request.method,
                'exception_type': exception.__class__.__name__,
                'duration_ms': round(duration_ms, 2),
            }
        )


def clear_request_context():
    """Clear thread-local request context."""
    for attr in ['request_id', 'trace_id', 'span_id', 'user_id', 'user_roles', 'clinic_id']:
        if hasattr(_request_context, attr):
            delattr(_request_context, attr)
