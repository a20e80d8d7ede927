"""
Authentication REST API views.

Implements endpoints for:
- Login (opens a console session and returns a JWT bound to it)
- Logout (ends the session bound to the caller's token)
- Current user profile with effective scopes
"""
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django_ratelimit.decorators import ratelimit
from django_ratelimit.exceptions import Ratelimited
from django.utils.decorators import method_decorator
from drf_spectacular.utils import extend_schema, OpenApiExample
from drf_spectacular.types import OpenApiTypes

from apps.core.exceptions import AuthenticationError
from apps.rbac.services import AuthService, RoleAssignmentEngine
from apps.rbac.serializers import LoginSerializer, UserSerializer, RoleAssignmentSerializer


@extend_schema(
    tags=['Authentication'],
    summary='Login',
    description='''
Authenticate with email and password and receive a JWT.

A successful login records a login audit and opens an active console
session; the token carries the session key and stops working once the
session is terminated (logout) or expires. Failed attempts are recorded too.

Pass `tenant_id` to start the session inside a tenant.

**No authentication required** - this is a public endpoint.

**Rate limit**: 5 requests/minute per IP
    ''',
    request=LoginSerializer,
    responses={
        200: OpenApiTypes.OBJECT,
        401: OpenApiTypes.OBJECT,
        422: OpenApiTypes.OBJECT,
        429: OpenApiTypes.OBJECT,
    },
    examples=[
        OpenApiExample(
            'Login Request',
            value={
                'email': 'admin@example.com',
                'password': 'SecurePass123!'
            },
            request_only=True
        )
    ]
)
@method_decorator(ratelimit(key='ip', rate='5/m', method='POST', block=False), name='dispatch')
class LoginView(APIView):
    """
    POST /v1/auth/login

    No authentication required.
    """
    authentication_classes = []
    permission_classes = []

    def post(self, request):
        """Login user."""
        if getattr(request, 'limited', False):
            raise Ratelimited()

        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = AuthService.login(
            email=serializer.validated_data['email'],
            password=serializer.validated_data['password'],
            tenant_id=serializer.validated_data.get('tenant_id'),
            request=request,
        )
        if not result:
            raise AuthenticationError('Invalid email or password')

        user = result['user']
        return Response({
            'token': result['token'],
            'session_key': result['session_key'],
            'user': UserSerializer(user).data,
        }, status=status.HTTP_200_OK)


@extend_schema(
    tags=['Authentication'],
    summary='Logout',
    description='''
End the console session bound to the caller's token.

The login audit gets its logout time and session duration, and the token is
rejected on every later request.
    ''',
    request=None,
    responses={200: OpenApiTypes.OBJECT, 401: OpenApiTypes.OBJECT},
)
class LogoutView(APIView):
    """
    POST /v1/auth/logout
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        """Logout user."""
        audit = AuthService.logout(request.user, request.auth, request=request)
        return Response({
            'message': 'Logged out',
            'session_duration': audit.session_duration if audit else None,
        })


@extend_schema(
    tags=['Authentication'],
    summary='Current user',
    description='''
Profile of the authenticated user, with role assignments and the scopes
effective for the current tenant context (X-TENANT-ID).
    ''',
    responses={200: OpenApiTypes.OBJECT, 401: OpenApiTypes.OBJECT},
)
class MeView(APIView):
    """
    GET /v1/auth/me
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        assignments = RoleAssignmentEngine.assignments_for_user(request.user.id)
        tenant = getattr(request, 'tenant', None)
        return Response({
            'user': UserSerializer(request.user).data,
            'tenant_id': str(tenant.id) if tenant else None,
            'scopes': sorted(getattr(request, 'scopes', set())),
            'assignments': RoleAssignmentSerializer(assignments, many=True).data,
        })
