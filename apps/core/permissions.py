"""
DRF permission classes and decorators for scope enforcement.

This module provides:
- HasTenantScopes: DRF permission class that enforces scope requirements
- @requires_scopes: Decorator to declare required scopes on views or handlers
"""
import logging
from functools import wraps
from rest_framework.permissions import BasePermission

logger = logging.getLogger(__name__)


class HasTenantScopes(BasePermission):
    """
    DRF permission class that enforces scope requirements on API endpoints.

    Scopes are resolved by TenantContextMiddleware into request.scopes from
    the caller's global role assignments plus those of the active tenant
    selected with X-TENANT-ID.

    Required scopes are looked up on the handler for the request method first
    and on the view class second, so one view can guard GET and POST with
    different scopes:

        @requires_scopes('roles:view')
        class RoleListView(APIView):
            permission_classes = [HasTenantScopes]

            def get(self, request):
                ...

            @requires_scopes('roles:manage')
            def post(self, request):
                ...
    """

    def has_permission(self, request, view):
        """
        Check if request has all required scopes for the view.

        Args:
            request: DRF request object with scopes attribute
            view: DRF view instance with optional required_scopes attribute

        Returns:
            bool: True if all required scopes are present, False otherwise
        """
        if not (request.user and request.user.is_authenticated):
            return False

        required_scopes = self._required_scopes(request, view)
        if not required_scopes:
            return True

        user_scopes = getattr(request, 'scopes', None) or set()
        missing_scopes = required_scopes - set(user_scopes)

        if missing_scopes:
            from apps.core.logging import SecurityLogger

            tenant = getattr(request, 'tenant', None)
            logger.warning(
                f"Permission denied: missing scopes {sorted(missing_scopes)}",
                extra={
                    'user_id': str(getattr(request.user, 'id', '')),
                    'tenant_slug': getattr(tenant, 'slug', None),
                    'required_scopes': sorted(required_scopes),
                    'missing_scopes': sorted(missing_scopes),
                    'view': view.__class__.__name__,
                    'method': request.method,
                    'path': request.path,
                    'request_id': getattr(request, 'request_id', None),
                }
            )
            SecurityLogger.log_permission_denied(
                request.user,
                tenant,
                missing_scopes,
                request.META.get('REMOTE_ADDR'),
            )
            return False

        return True

    @staticmethod
    def _required_scopes(request, view):
        handler = getattr(view, request.method.lower(), None)
        scopes = getattr(handler, 'required_scopes', None)
        if scopes is None:
            scopes = getattr(view, 'required_scopes', None)

        if not scopes:
            return set()
        if isinstance(scopes, str):
            return {scopes}
        return set(scopes)


def requires_scopes(*scopes):
    """
    Decorator to declare required scopes on view classes, handler methods or
    function views.

    Usage:
        @requires_scopes('audit:view')
        class AuditLogListView(APIView):
            permission_classes = [HasTenantScopes]

        @requires_scopes('analytics:view')
        @api_view(['GET'])
        @permission_classes([HasTenantScopes])
        def login_trends(request):
            ...

    Args:
        *scopes: Variable number of scope strings required for access

    Returns:
        Decorator function that sets required_scopes attribute
    """
    def decorator(view_or_method):
        if isinstance(view_or_method, type):
            view_or_method.required_scopes = set(scopes)
            return view_or_method

        # Function views wrapped by @api_view expose their generated class
        if hasattr(view_or_method, 'cls'):
            view_or_method.cls.required_scopes = set(scopes)
            return view_or_method

        @wraps(view_or_method)
        def wrapped(*args, **kwargs):
            return view_or_method(*args, **kwargs)

        wrapped.required_scopes = set(scopes)
        return wrapped

    return decorator
