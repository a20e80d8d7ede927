"""
Audit REST API views.

Implements endpoints for:
- Audit trail browsing, statistics and module registry
- Streaming CSV/JSON export of the audit trail
- Retention cleanup
- Login audit recording, logout, export and cleanup
"""
from django.shortcuts import get_object_or_404
from django.utils.decorators import method_decorator
from django_ratelimit.decorators import ratelimit
from django_ratelimit.exceptions import Ratelimited
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter, OpenApiExample
from drf_spectacular.types import OpenApiTypes

from apps.audit.models import AuditEvent
from apps.audit.modules import AUDIT_MODULES
from apps.audit.serializers import (
    AuditEventSerializer, AuditEventFilterSerializer, AuditExportQuerySerializer,
    DateWindowSerializer, RetentionCleanupSerializer,
    LoginAuditSerializer, LoginAttemptSerializer, LogoutRecordSerializer,
    LoginExportQuerySerializer,
)
from apps.audit.services import AuditRecorder, LoginAuditTracker
from apps.audit.services.exports import (
    streaming_attachment, audit_export_filename, login_export_filename,
)
from apps.core.exceptions import NotFound
from apps.core.permissions import requires_scopes, HasTenantScopes


def _tenant_filter(request, tenant_id=None):
    """Explicit tenant_id wins; otherwise the X-TENANT-ID context, if any."""
    if tenant_id:
        return tenant_id
    tenant = getattr(request, 'tenant', None)
    return tenant.id if tenant else None


def _check_rate_limit(request):
    if getattr(request, 'limited', False):
        raise Ratelimited()


AUDIT_FILTER_PARAMETERS = [
    OpenApiParameter('module', OpenApiTypes.STR, description='Filter by module (e.g. roles_permissions)'),
    OpenApiParameter('submodule', OpenApiTypes.STR, description='Filter by submodule (e.g. role_assigned)'),
    OpenApiParameter('user_id', OpenApiTypes.UUID, description='Filter by causer'),
    OpenApiParameter('subject_type', OpenApiTypes.STR, description='Filter by subject type (e.g. User)'),
    OpenApiParameter('subject_id', OpenApiTypes.STR, description='Filter by subject id'),
    OpenApiParameter('tenant_id', OpenApiTypes.UUID, description='Filter by tenant'),
    OpenApiParameter('start_date', OpenApiTypes.DATE, description='First day (inclusive)'),
    OpenApiParameter('end_date', OpenApiTypes.DATE, description='Last day (inclusive)'),
]


# ===== AUDIT TRAIL =====

@extend_schema_view(
    get=extend_schema(
        tags=['Audit - Trail'],
        summary='List audit events',
        description='''
Page through the audit trail, newest first.

**Required scope:** `audit:view`

Without `tenant_id` the X-TENANT-ID context, when present, narrows the
trail to that tenant. `per_page` is capped at 500.
        ''',
        parameters=AUDIT_FILTER_PARAMETERS + [
            OpenApiParameter('page', OpenApiTypes.INT),
            OpenApiParameter('per_page', OpenApiTypes.INT),
        ],
        responses={200: AuditEventSerializer(many=True), 403: OpenApiTypes.OBJECT, 422: OpenApiTypes.OBJECT},
    )
)
@requires_scopes('audit:view')
class AuditLogListView(APIView):
    """
    GET /v1/audit-logs
    """
    permission_classes = [HasTenantScopes]

    def get(self, request):
        """List audit events."""
        params = AuditEventFilterSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        filters = params.filters()
        filters['tenant_id'] = _tenant_filter(request, filters.get('tenant_id'))

        result = AuditRecorder.query(
            filters,
            page=params.validated_data['page'],
            per_page=params.validated_data['per_page'],
        )
        causers = AuditRecorder.causer_names([event.causer_id for event in result['results'] if event.causer_id])

        return Response({
            'count': result['count'],
            'page': result['page'],
            'per_page': result['per_page'],
            'total_pages': result['total_pages'],
            'results': AuditEventSerializer(result['results'], many=True, context={'causers': causers}).data,
        })


@extend_schema(
    tags=['Audit - Trail'],
    summary='Get audit event',
    description='**Required scope:** `audit:view`',
    responses={200: AuditEventSerializer, 404: OpenApiTypes.OBJECT},
)
@requires_scopes('audit:view')
class AuditLogDetailView(APIView):
    """
    GET /v1/audit-logs/{event_id}
    """
    permission_classes = [HasTenantScopes]

    def get(self, request, event_id):
        event = get_object_or_404(AuditEvent, id=event_id)
        causers = AuditRecorder.causer_names([event.causer_id] if event.causer_id else [])
        return Response(AuditEventSerializer(event, context={'causers': causers}).data)


@extend_schema(
    tags=['Audit - Trail'],
    summary='Audit statistics',
    description='''
Totals, per-module and per-submodule counts, top causers and a zero-filled
daily series over a date window (default: last 30 days, at most 366).

**Required scope:** `audit:view`
    ''',
    parameters=[
        OpenApiParameter('start_date', OpenApiTypes.DATE),
        OpenApiParameter('end_date', OpenApiTypes.DATE),
    ],
    responses={200: OpenApiTypes.OBJECT, 422: OpenApiTypes.OBJECT},
)
@requires_scopes('audit:view')
class AuditStatisticsView(APIView):
    """
    GET /v1/audit-logs/statistics
    """
    permission_classes = [HasTenantScopes]

    def get(self, request):
        params = DateWindowSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        stats = AuditRecorder.statistics(
            start_date=params.validated_data.get('start_date'),
            end_date=params.validated_data.get('end_date'),
            tenant_id=_tenant_filter(request),
        )
        return Response(stats)


@extend_schema(
    tags=['Audit - Trail'],
    summary='List audit modules',
    description='Registered modules with their submodules.\n\n**Required scope:** `audit:view`',
    responses={200: OpenApiTypes.OBJECT},
)
@requires_scopes('audit:view')
class AuditModulesView(APIView):
    """
    GET /v1/audit-logs/modules
    """
    permission_classes = [HasTenantScopes]

    def get(self, request):
        modules = [
            {
                'key': key,
                'name': module['name'],
                'description': module['description'],
                'submodules': [
                    {'key': sub_key, 'description': sub_description}
                    for sub_key, sub_description in module['submodules'].items()
                ],
            }
            for key, module in AUDIT_MODULES.items()
        ]
        return Response({'modules': modules})


@extend_schema(
    tags=['Audit - Export'],
    summary='Export audit events',
    description='''
Download the filtered audit trail as CSV or JSON. The file is streamed.

**Required scope:** `audit:export`

CSV columns: ID, Description, Module, Submodule, User, User Email,
Subject Type, Subject ID, IP Address, User Agent, Date, Properties.

**Rate limit**: 10 requests/minute per user
    ''',
    parameters=AUDIT_FILTER_PARAMETERS + [
        OpenApiParameter('format', OpenApiTypes.STR, enum=['csv', 'json']),
        OpenApiParameter('limit', OpenApiTypes.INT, description='Row cap (bounded by AUDIT_EXPORT_MAX_ROWS)'),
    ],
    responses={(200, 'text/csv'): OpenApiTypes.BINARY, 422: OpenApiTypes.OBJECT, 429: OpenApiTypes.OBJECT},
)
@method_decorator(ratelimit(key='user_or_ip', rate='10/m', method='GET', block=False), name='dispatch')
@requires_scopes('audit:export')
class AuditExportView(APIView):
    """
    GET /v1/audit-logs/export
    """
    permission_classes = [HasTenantScopes]

    def get(self, request):
        _check_rate_limit(request)

        params = AuditExportQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        filters = params.filters()
        filters['tenant_id'] = _tenant_filter(request, filters.get('tenant_id'))
        fmt = params.validated_data['format']

        chunks = AuditRecorder.export(filters, fmt=fmt, limit=params.validated_data.get('limit'))

        AuditRecorder.record(
            'security', 'exported', f"Exported audit trail as {fmt.upper()}",
            submodule='data_export',
            causer_id=request.user.id,
            tenant_id=filters['tenant_id'],
            properties={'format': fmt, 'filters': filters},
            request=request,
        )

        content_type = 'text/csv' if fmt == 'csv' else 'application/json'
        return streaming_attachment(chunks, audit_export_filename(fmt), content_type)


@extend_schema(
    tags=['Audit - Retention'],
    summary='Clean up audit events',
    description='''
Delete audit events older than `days` days.

**Required scope:** `audit:manage`

`days` below 30 is rejected with 422 `INVALID_RETENTION` and nothing is
deleted.
    ''',
    request=RetentionCleanupSerializer,
    responses={200: OpenApiTypes.OBJECT, 422: OpenApiTypes.OBJECT, 429: OpenApiTypes.OBJECT},
    examples=[OpenApiExample('Keep 90 days', value={'days': 90}, request_only=True)],
)
@method_decorator(ratelimit(key='user_or_ip', rate='5/m', method='POST', block=False), name='dispatch')
@requires_scopes('audit:manage')
class AuditCleanupView(APIView):
    """
    POST /v1/audit-logs/cleanup
    """
    permission_classes = [HasTenantScopes]

    def post(self, request):
        _check_rate_limit(request)

        serializer = RetentionCleanupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        deleted = AuditRecorder.cleanup(
            serializer.validated_data['days'],
            causer_id=request.user.id,
            request=request,
        )
        return Response({'deleted_count': deleted})


# ===== LOGIN AUDITS =====

@extend_schema(
    tags=['Audit - Logins'],
    summary='Record login attempt',
    description='''
Record a login attempt reported by a tenant application.

**Required scope:** `sessions:record`

A successful attempt opens an active session and returns its key (a generated
`api_` key for API logins when none is supplied). A failed attempt is stored
with its failure reason.
    ''',
    request=LoginAttemptSerializer,
    responses={201: LoginAuditSerializer, 404: OpenApiTypes.OBJECT, 422: OpenApiTypes.OBJECT},
    examples=[
        OpenApiExample(
            'Failed attempt',
            value={'success': False, 'email': 'someone@example.com', 'login_method': 'direct',
                   'failure_reason': 'Invalid credentials'},
            request_only=True
        )
    ]
)
@requires_scopes('sessions:record')
class LoginAuditRecordView(APIView):
    """
    POST /v1/login-audits
    """
    permission_classes = [HasTenantScopes]

    def post(self, request):
        serializer = LoginAttemptSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        audit = LoginAuditTracker.record_attempt(
            success=data['success'],
            method=data['login_method'],
            user_id=data.get('user_id'),
            email=data.get('email', ''),
            tenant_id=_tenant_filter(request, data.get('tenant_id')),
            ip_address=data.get('ip_address'),
            user_agent=data.get('user_agent', ''),
            failure_reason=data.get('failure_reason') or None,
            session_key=data.get('session_key') or None,
        )

        body = LoginAuditSerializer(audit).data
        body['session_key'] = audit.session_key or None
        return Response(body, status=status.HTTP_201_CREATED)


@extend_schema(
    tags=['Audit - Logins'],
    summary='Record logout',
    description='''
Terminate a session and stamp logout time and duration on its login audit.

**Required scope:** `sessions:record`
    ''',
    request=LogoutRecordSerializer,
    responses={200: LoginAuditSerializer, 404: OpenApiTypes.OBJECT},
)
@requires_scopes('sessions:record')
class LoginAuditLogoutView(APIView):
    """
    POST /v1/login-audits/logout
    """
    permission_classes = [HasTenantScopes]

    def post(self, request):
        serializer = LogoutRecordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        audit = LoginAuditTracker.record_logout(serializer.validated_data['session_key'])
        if audit is None:
            raise NotFound('No open login session matches this key')
        return Response(LoginAuditSerializer(audit).data)


@extend_schema(
    tags=['Audit - Logins'],
    summary='Export login audits',
    description='''
Download login audits in a date window (default: last 30 days) as CSV.

**Required scope:** `audit:export`

CSV columns: Date/Time, User Name, User Email, Tenant, Login Method,
IP Address, Success, Session Duration (minutes), Failure Reason.
    ''',
    parameters=[
        OpenApiParameter('start_date', OpenApiTypes.DATE),
        OpenApiParameter('end_date', OpenApiTypes.DATE),
        OpenApiParameter('tenant_id', OpenApiTypes.UUID),
    ],
    responses={(200, 'text/csv'): OpenApiTypes.BINARY, 422: OpenApiTypes.OBJECT, 429: OpenApiTypes.OBJECT},
)
@method_decorator(ratelimit(key='user_or_ip', rate='10/m', method='GET', block=False), name='dispatch')
@requires_scopes('audit:export')
class LoginAuditExportView(APIView):
    """
    GET /v1/login-audits/export
    """
    permission_classes = [HasTenantScopes]

    def get(self, request):
        _check_rate_limit(request)

        params = LoginExportQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        start, end = LoginAuditTracker.export_window(
            params.validated_data.get('start_date'),
            params.validated_data.get('end_date'),
        )
        tenant_id = _tenant_filter(request, params.validated_data.get('tenant_id'))
        chunks = LoginAuditTracker.export(start, end, tenant_id=tenant_id)

        AuditRecorder.record(
            'security', 'exported', 'Exported login audits as CSV',
            submodule='data_export',
            causer_id=request.user.id,
            tenant_id=tenant_id,
            properties={'start': start, 'end': end},
            request=request,
        )

        return streaming_attachment(chunks, login_export_filename(start, end), 'text/csv')


@extend_schema(
    tags=['Audit - Retention'],
    summary='Clean up login audits',
    description='''
Delete login audits older than `days` days and purge ended sessions.

**Required scope:** `audit:manage`

`days` below 30 is rejected with 422 `INVALID_RETENTION` and nothing is
deleted.
    ''',
    request=RetentionCleanupSerializer,
    responses={200: OpenApiTypes.OBJECT, 422: OpenApiTypes.OBJECT, 429: OpenApiTypes.OBJECT},
)
@method_decorator(ratelimit(key='user_or_ip', rate='5/m', method='POST', block=False), name='dispatch')
@requires_scopes('audit:manage')
class LoginAuditCleanupView(APIView):
    """
    POST /v1/login-audits/cleanup
    """
    permission_classes = [HasTenantScopes]

    def post(self, request):
        _check_rate_limit(request)

        serializer = RetentionCleanupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = LoginAuditTracker.cleanup(
            serializer.validated_data['days'],
            causer_id=request.user.id,
            request=request,
        )
        return Response(result)
