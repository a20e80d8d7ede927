"""
Custom DRF authentication classes.
"""
from rest_framework.authentication import BaseAuthentication


class MiddlewareAuthentication(BaseAuthentication):
    """
    DRF authentication class that uses the user set by TenantContextMiddleware.

    The middleware validates the Bearer JWT and sets request.user; this class
    hands that user to DRF. Unauthenticated requests get a 401 with a Bearer
    challenge rather than a 403.
    """

    def authenticate(self, request):
        """
        Return the user from the middleware if present.

        Returns:
            tuple: (user, None) if user is authenticated, None otherwise
        """
        django_request = request._request

        user = getattr(django_request, 'user', None)
        if user is not None and user.is_authenticated:
            return (user, getattr(django_request, 'auth_payload', None))

        return None

    def authenticate_header(self, request):
        return 'Bearer'
