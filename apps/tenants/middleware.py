"""
Request context middleware for multi-tenant scoping.

Resolves the caller from the Bearer JWT, the optional tenant context from
X-TENANT-ID, and the caller's effective scopes for that context.
"""
import logging
import threading
import uuid
from django.contrib.auth.models import AnonymousUser
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin
from .models import Tenant

logger = logging.getLogger(__name__)


class TenantContextMiddleware(MiddlewareMixin):
    """
    Attach request.user, request.tenant and request.scopes.

    This middleware:
    1. Validates the Bearer JWT and loads the active user
    2. Rejects tokens whose console session has ended (logout or expiry)
    3. Resolves X-TENANT-ID into a Tenant (404 when unknown)
    4. Resolves the user's scopes: global assignments always, tenant
       assignments only when the selected tenant is active

    A request without a token passes through anonymous; DRF then answers 401
    for protected endpoints.
    """

    # Paths that skip token and tenant resolution
    PUBLIC_PATHS = [
        '/schema',
        '/v1/health',
    ]

    def process_request(self, request):
        """Resolve caller, tenant and scopes for the request."""
        request_id = getattr(request, 'request_id', None) or str(uuid.uuid4())
        request.request_id = request_id

        request.user = AnonymousUser()
        request.auth_payload = None
        request.tenant = None
        request.scopes = set()

        if self._is_public_path(request.path):
            return None

        token = self._bearer_token(request)
        if token:
            from apps.rbac.services import AuthService

            user, payload = AuthService.resolve_bearer(token)
            if user is None:
                logger.info(
                    "Rejected invalid or expired bearer token",
                    extra={'request_id': request_id, 'path': request.path}
                )
                return self._error_response(
                    'INVALID_TOKEN',
                    'Invalid or expired token',
                    status=401
                )

            session_key = payload.get('sid')
            if session_key and not self._touch_session(session_key, payload.get('tenant_id')):
                return self._error_response(
                    'SESSION_ENDED',
                    'The session for this token has ended. Please log in again.',
                    status=401
                )

            request.user = user
            request.auth_payload = payload

        tenant_id = request.headers.get('X-TENANT-ID')
        if tenant_id:
            tenant = self._resolve_tenant(tenant_id)
            if tenant is None:
                logger.warning(
                    f"Unknown tenant in X-TENANT-ID: {tenant_id}",
                    extra={'request_id': request_id}
                )
                return self._error_response(
                    'NOT_FOUND',
                    'Tenant not found',
                    status=404,
                    details={'tenant_id': tenant_id}
                )
            request.tenant = tenant
            threading.current_thread().tenant_id = str(tenant.id)

            from apps.core.sentry_utils import set_tenant_context
            set_tenant_context(tenant)

        if request.user.is_authenticated:
            from apps.rbac.services import RBACService
            from apps.core.sentry_utils import set_user_context

            request.scopes = RBACService.resolve_scopes(request.user, request.tenant)
            set_user_context(request.user, request.scopes)

            logger.debug(
                f"Request context set with {len(request.scopes)} scopes",
                extra={
                    'request_id': request_id,
                    'user_id': str(request.user.id),
                    'tenant_id': str(request.tenant.id) if request.tenant else None,
                }
            )

        return None

    def _is_public_path(self, path):
        """Check if path is public and skips context resolution."""
        return any(path.startswith(public_path) for public_path in self.PUBLIC_PATHS)

    @staticmethod
    def _bearer_token(request):
        header = request.headers.get('Authorization', '')
        scheme, _, token = header.partition(' ')
        if scheme.lower() != 'bearer' or not token.strip():
            return None
        return token.strip()

    @staticmethod
    def _resolve_tenant(tenant_id):
        try:
            tenant_uuid = uuid.UUID(str(tenant_id))
        except ValueError:
            return None
        return Tenant.objects.filter(id=tenant_uuid).first()

    @staticmethod
    def _touch_session(session_key, tenant_id=None):
        from apps.audit.services import ActiveSessionRegistry
        return ActiveSessionRegistry.touch(session_key, tenant_id=tenant_id)

    def _error_response(self, code, message, status=400, details=None):
        """Generate standardized error response."""
        error_data = {
            'error': {
                'code': code,
                'message': message,
            }
        }

        if details:
            error_data['error']['details'] = details

        return JsonResponse(error_data, status=status)
