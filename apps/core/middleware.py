"""
Core middleware for request processing.
"""
import logging
import threading
import uuid
from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger(__name__)


class RequestIDMiddleware(MiddlewareMixin):
    """
    Inject a unique request_id into each request for tracing.
    The request_id is added to the request object and to log records.
    """

    def process_request(self, request):
        """Generate and attach request_id to the request."""
        request_id = request.META.get('HTTP_X_REQUEST_ID') or str(uuid.uuid4())
        request.request_id = request_id

        # Thread-local copy for LoggingFilter
        thread = threading.current_thread()
        thread.request_id = request_id
        thread.tenant_id = None

    def process_response(self, request, response):
        """Add request_id to response headers and clear thread-local context."""
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id

        thread = threading.current_thread()
        for attr in ('request_id', 'tenant_id'):
            if hasattr(thread, attr):
                delattr(thread, attr)
        return response


class LoggingFilter(logging.Filter):
    """
    Add request_id and tenant_id to log records from thread-local storage.
    """

    def filter(self, record):
        thread = threading.current_thread()

        if not hasattr(record, 'request_id') and getattr(thread, 'request_id', None):
            record.request_id = thread.request_id

        if not hasattr(record, 'tenant_id') and getattr(thread, 'tenant_id', None):
            record.tenant_id = thread.tenant_id

        return True
