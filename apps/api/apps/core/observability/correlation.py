"""
Request correlation middleware.

Generates/propagates X-Request-ID and keeps it in thread-local storage so
log records and audit entries written during the request can carry it.
"""
import uuid
import time
import logging
from django.utils.deprecation import MiddlewareMixin
from threading import local

from .metrics import metrics

# Thread-local storage for request context
_request_context = local()

logger = logging.getLogger(__name__)


def get_request_id():
    """Get current request ID from thread-local storage."""
    return getattr(_request_context, 'request_id', None)


def get_user_id():
    """Get current user ID from thread-local storage."""
    return getattr(_request_context, 'user_id', None)


def set_user_id(user_id):
    """
    Record the authenticated user for the current request.

    DRF authenticates inside the view (JWT), after process_request has run,
    so views call this once request.user is known.
    """
    _request_context.user_id = str(user_id) if user_id else None


def get_client_ip(request):
    """Best client address for audit purposes (first X-Forwarded-For hop)."""
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip() or None
    return request.META.get('REMOTE_ADDR') or None


class RequestCorrelationMiddleware(MiddlewareMixin):
    """
    Middleware to handle request correlation.

    - Generates/propagates X-Request-ID
    - Stores context in thread-local for logging
    - Adds the correlation header to the response
    - Logs request duration
    """

    REQUEST_ID_HEADER = 'HTTP_X_REQUEST_ID'

    def process_request(self, request):
        request_id = request.META.get(self.REQUEST_ID_HEADER) or str(uuid.uuid4())

        request.request_id = request_id
        request.start_time = time.time()

        _request_context.request_id = request_id

        # Session-authenticated users (admin) are known here; JWT users are
        # recorded later by the view via set_user_id().
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            _request_context.user_id = str(user.pk)
        else:
            _request_context.user_id = None

    def process_response(self, request, response):
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id

        if hasattr(request, 'start_time'):
            duration_ms = (time.time() - request.start_time) * 1000

            logger.info(
                'Request completed',
                extra={
                    'event': 'http_request_completed',
                    'path': request.path,
                    'method': request.method,
                    'status_code': response.status_code,
                    'duration_ms': round(duration_ms, 2),
                }
            )

        clear_request_context()
        return response

    def process_exception(self, request, exception):
        metrics.exceptions_total.labels(
            exception_type=exception.__class__.__name__,
            location=request.path,
        ).inc()

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
    """Clear thread-local request context (useful for testing)."""
    for attr in ['request_id', 'user_id']:
        if hasattr(_request_context, attr):
            delattr(_request_context, attr)
