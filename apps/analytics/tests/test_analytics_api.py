"""
Tests for analytics REST API endpoints.
"""
import uuid

import pytest
from rest_framework import status

from apps.audit.services import LoginAuditTracker
from apps.rbac.services import RoleAssignmentEngine


@pytest.mark.django_db
class TestAnalyticsAccess:

    def test_requires_authentication(self, api_client):
        response = api_client.get('/v1/analytics/dashboard')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_requires_analytics_scope(self, api_client, custom_role, user, authenticate):
        RoleAssignmentEngine.assign(user.id, custom_role.slug)
        authenticate(api_client, user)

        response = api_client.get('/v1/analytics/dashboard')

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['error']['code'] == 'PERMISSION_DENIED'

    def test_tenant_admin_sees_own_tenant(self, api_client, console_catalog, user, tenant, other_tenant, authenticate):
        RoleAssignmentEngine.assign(user.id, 'tenant-admin', tenant_id=tenant.id)
        LoginAuditTracker.record_attempt(success=True, user_id=user.id, tenant_id=tenant.id)
        LoginAuditTracker.record_attempt(success=True, user_id=user.id, tenant_id=other_tenant.id)
        authenticate(api_client, user, tenant=tenant)

        response = api_client.get('/v1/analytics/dashboard')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['tenant_id'] == str(tenant.id)
        assert response.data['total_logins_30d'] == 1

    def test_tenant_role_does_not_grant_other_tenant(self, api_client, console_catalog, user, tenant,
                                                      other_tenant, authenticate):
        RoleAssignmentEngine.assign(user.id, 'tenant-admin', tenant_id=tenant.id)
        authenticate(api_client, user, tenant=other_tenant)

        response = api_client.get('/v1/analytics/dashboard')

        assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.django_db
class TestAnalyticsEndpoints:

    def test_dashboard(self, admin_client):
        response = admin_client.get('/v1/analytics/dashboard')

        assert response.status_code == status.HTTP_200_OK
        assert 'active_users' in response.data
        assert 'audit_summary' in response.data

    def test_trends(self, admin_client):
        response = admin_client.get('/v1/analytics/trends', {'days': 14})

        assert response.data['days'] == 14
        assert len(response.data['trends']) == 14

    def test_trends_default_days(self, admin_client):
        response = admin_client.get('/v1/analytics/trends')

        assert response.data['days'] == 7
        assert len(response.data['trends']) == 7

    @pytest.mark.parametrize('days', ['0', '1000', 'soon'])
    def test_trends_days_rejected(self, admin_client, days):
        response = admin_client.get('/v1/analytics/trends', {'days': days})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.data['error']['code'] == 'VALIDATION_FAILED'

    def test_hourly_days_rejected(self, admin_client):
        response = admin_client.get('/v1/analytics/hourly', {'days': 367})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_hourly(self, admin_client):
        response = admin_client.get('/v1/analytics/hourly')

        assert len(response.data['hours']) == 24

    def test_failed_attempts(self, admin_client):
        LoginAuditTracker.record_attempt(success=False, email='x@example.com')

        response = admin_client.get('/v1/analytics/failed-attempts', {'limit': 5})

        assert response.data['count'] == 1
        assert response.data['attempts'][0]['failure_reason'] == 'Invalid credentials'

    def test_recent_activity(self, admin_client, user):
        LoginAuditTracker.record_attempt(success=True, user_id=user.id)

        response = admin_client.get('/v1/analytics/recent-activity')

        assert response.data['count'] == 1
        assert response.data['activity'][0]['user_name'] == 'Test User'

    def test_sessions_by_method(self, admin_client, user):
        LoginAuditTracker.record_attempt(success=True, method='api', user_id=user.id)

        response = admin_client.get('/v1/analytics/sessions/by-method')

        assert response.data['by_method'] == {'sso': 0, 'direct': 0, 'api': 1}

    def test_user_timeline(self, admin_client, user):
        LoginAuditTracker.record_attempt(success=True, user_id=user.id)

        response = admin_client.get(f'/v1/analytics/users/{user.id}')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['user']['id'] == str(user.id)
        assert len(response.data['timeline']) == 1

    def test_user_timeline_unknown(self, admin_client):
        response = admin_client.get(f'/v1/analytics/users/{uuid.uuid4()}')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['error']['code'] == 'NOT_FOUND'

    def test_tenant_rollup(self, admin_client, tenant):
        response = admin_client.get(f'/v1/analytics/tenants/{tenant.id}')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['seats'] == {'max_users': 10, 'used': 0, 'available': 10}

    def test_tenant_rollup_unknown(self, admin_client):
        response = admin_client.get(f'/v1/analytics/tenants/{uuid.uuid4()}')

        assert response.status_code == status.HTTP_404_NOT_FOUND
