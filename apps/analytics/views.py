"""
Analytics API views.

Provides REST endpoints for:
- Console dashboard
- Login trends, hourly distribution, failed attempts and recent activity
- Active sessions by login method
- Per-user timeline and per-tenant rollup

Figures are scoped to the X-TENANT-ID tenant when one is selected.
"""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from apps.analytics.services import AnalyticsAggregator
from apps.core.permissions import HasTenantScopes, requires_scopes
from apps.audit.services.login_audit_tracker import clamp_limit, validate_days


def _aggregator(request):
    return AnalyticsAggregator(getattr(request, 'tenant', None))


DAYS_PARAMETER = OpenApiParameter('days', OpenApiTypes.INT, description='Days back (1-366, default 7); other values are rejected with 422')
LIMIT_PARAMETER = OpenApiParameter('limit', OpenApiTypes.INT, description='Max entries (1-500, default 50)')


@extend_schema(
    tags=['Analytics'],
    summary='Dashboard',
    description='Active users and sessions, login totals and trend, audit summary.\n\n**Required scope:** `analytics:view`',
    responses={200: OpenApiTypes.OBJECT, 403: OpenApiTypes.OBJECT},
)
@requires_scopes('analytics:view')
@api_view(['GET'])
@permission_classes([HasTenantScopes])
def dashboard(request):
    """
    GET /v1/analytics/dashboard

    Required scope: analytics:view
    """
    return Response(_aggregator(request).dashboard())


@extend_schema(
    tags=['Analytics'],
    summary='Login trends',
    description='''
Successful logins per day, one entry per day ending today, zero-filled.

**Required scope:** `analytics:view`
    ''',
    parameters=[DAYS_PARAMETER],
    responses={200: OpenApiTypes.OBJECT},
)
@requires_scopes('analytics:view')
@api_view(['GET'])
@permission_classes([HasTenantScopes])
def login_trends(request):
    """
    GET /v1/analytics/trends?days=7

    Required scope: analytics:view
    """
    days = validate_days(request.query_params.get('days'))
    return Response({
        'days': days,
        'trends': _aggregator(request).trends(days),
    })


@extend_schema(
    tags=['Analytics'],
    summary='Hourly login distribution',
    description='Successful logins per hour of day; all 24 hours present.\n\n**Required scope:** `analytics:view`',
    parameters=[DAYS_PARAMETER],
    responses={200: OpenApiTypes.OBJECT},
)
@requires_scopes('analytics:view')
@api_view(['GET'])
@permission_classes([HasTenantScopes])
def hourly_distribution(request):
    """
    GET /v1/analytics/hourly?days=7

    Required scope: analytics:view
    """
    days = validate_days(request.query_params.get('days'))
    return Response({
        'days': days,
        'hours': _aggregator(request).hourly(days),
    })


@extend_schema(
    tags=['Analytics'],
    summary='Failed login attempts',
    description='Latest failed attempts, newest first.\n\n**Required scope:** `analytics:view`',
    parameters=[LIMIT_PARAMETER],
    responses={200: OpenApiTypes.OBJECT},
)
@requires_scopes('analytics:view')
@api_view(['GET'])
@permission_classes([HasTenantScopes])
def failed_attempts(request):
    """
    GET /v1/analytics/failed-attempts?limit=50

    Required scope: analytics:view
    """
    attempts = _aggregator(request).failed_attempts(clamp_limit(request.query_params.get('limit', 50)))
    return Response({
        'count': len(attempts),
        'attempts': attempts,
    })


@extend_schema(
    tags=['Analytics'],
    summary='Recent login activity',
    description='Latest login attempts, successful or not, newest first.\n\n**Required scope:** `analytics:view`',
    parameters=[LIMIT_PARAMETER],
    responses={200: OpenApiTypes.OBJECT},
)
@requires_scopes('analytics:view')
@api_view(['GET'])
@permission_classes([HasTenantScopes])
def recent_activity(request):
    """
    GET /v1/analytics/recent-activity?limit=50

    Required scope: analytics:view
    """
    activity = _aggregator(request).recent_activity(clamp_limit(request.query_params.get('limit', 50)))
    return Response({
        'count': len(activity),
        'activity': activity,
    })


@extend_schema(
    tags=['Analytics'],
    summary='Active sessions by login method',
    description='Online session count per login method; every method present.\n\n**Required scope:** `analytics:view`',
    responses={200: OpenApiTypes.OBJECT},
)
@requires_scopes('analytics:view')
@api_view(['GET'])
@permission_classes([HasTenantScopes])
def sessions_by_method(request):
    """
    GET /v1/analytics/sessions/by-method

    Required scope: analytics:view
    """
    return Response({'by_method': _aggregator(request).sessions_by_method()})


@extend_schema(
    tags=['Analytics'],
    summary='User timeline',
    description='''
Login summary, live sessions and a merged, newest-first list of logins and
audit events for one user.

**Required scope:** `analytics:view`
    ''',
    parameters=[LIMIT_PARAMETER],
    responses={200: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
)
@requires_scopes('analytics:view')
@api_view(['GET'])
@permission_classes([HasTenantScopes])
def user_timeline(request, user_id):
    """
    GET /v1/analytics/users/{user_id}

    Required scope: analytics:view
    """
    return Response(_aggregator(request).user_timeline(user_id, request.query_params.get('limit', 50)))


@extend_schema(
    tags=['Analytics'],
    summary='Tenant rollup',
    description='''
Logins, failures, live sessions, top users, role assignments, seat usage and
audit volume for one tenant over the last 30 days.

**Required scope:** `analytics:view`
    ''',
    responses={200: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
)
@requires_scopes('analytics:view')
@api_view(['GET'])
@permission_classes([HasTenantScopes])
def tenant_rollup(request, tenant_id):
    """
    GET /v1/analytics/tenants/{tenant_id}

    Required scope: analytics:view
    """
    return Response(AnalyticsAggregator().tenant_rollup(tenant_id))
