"""
Tests for audit REST API endpoints.

Tests:
- Audit trail listing, detail, statistics and module catalog
- CSV/JSON export downloads
- Retention cleanup
- Login audit recording, logout and export
"""
import csv
import io
import json
import uuid
from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework import status

from apps.audit.models import ActiveSession, AuditEvent, LoginAudit
from apps.audit.services import AuditRecorder
from apps.rbac.services import RoleAssignmentEngine


def streamed(response):
    return b''.join(response.streaming_content).decode()


@pytest.fixture
def auditor_client(api_client, console_catalog, user, authenticate):
    """Client for a user holding the auditor role (view and export, no manage)."""
    RoleAssignmentEngine.assign(user.id, 'auditor')
    return authenticate(api_client, user)


@pytest.mark.django_db
class TestAuditLogList:
    """Test GET /v1/audit-logs."""

    def test_requires_audit_view(self, api_client, user, authenticate):
        authenticate(api_client, user)

        response = api_client.get('/v1/audit-logs')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_list_newest_first(self, admin_client, admin_user):
        AuditRecorder.record('system', 'archived', 'First')
        AuditRecorder.record('user_management', 'updated', 'Second', causer_id=admin_user.id)

        response = admin_client.get('/v1/audit-logs')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 2
        assert response.data['page'] == 1
        assert response.data['per_page'] == 100
        assert [e['description'] for e in response.data['results']] == ['Second', 'First']
        assert response.data['results'][0]['causer_name'] == 'Admin User'
        assert response.data['results'][1]['causer_name'] == 'System'
        assert response.data['results'][1]['module_display'] == 'System Administration'

    def test_filter_by_module(self, admin_client):
        AuditRecorder.record('system', 'archived', 'System job')
        AuditRecorder.record('user_management', 'updated', 'User change')

        response = admin_client.get('/v1/audit-logs', {'module': 'user_management'})

        assert [e['description'] for e in response.data['results']] == ['User change']

    def test_tenant_context_scopes_results(self, api_client, admin_user, tenant, authenticate):
        AuditRecorder.record('system', 'note', 'Inside', tenant_id=tenant.id)
        AuditRecorder.record('system', 'note', 'Outside')
        authenticate(api_client, admin_user, tenant=tenant)

        response = api_client.get('/v1/audit-logs')

        assert [e['description'] for e in response.data['results']] == ['Inside']

    def test_per_page_clamped(self, admin_client):
        response = admin_client.get('/v1/audit-logs', {'per_page': 2000})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['per_page'] == 500

    def test_invalid_params(self, admin_client):
        response = admin_client.get('/v1/audit-logs', {'start_date': '2024-02-10', 'end_date': '2024-02-01'})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.data['error']['code'] == 'VALIDATION_FAILED'

    def test_malformed_user_id(self, admin_client):
        response = admin_client.get('/v1/audit-logs', {'user_id': 'abc'})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert 'user_id' in response.data['error']['details']


@pytest.mark.django_db
class TestAuditLogDetail:

    def test_get_event(self, admin_client):
        event = AuditRecorder.record('system', 'archived', 'Job', properties={'deleted_count': 3})

        response = admin_client.get(f'/v1/audit-logs/{event.id}')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['properties'] == {'deleted_count': 3}

    def test_unknown_event(self, admin_client):
        response = admin_client.get(f'/v1/audit-logs/{uuid.uuid4()}')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['error']['code'] == 'NOT_FOUND'


@pytest.mark.django_db
class TestAuditStatisticsAndModules:

    def test_statistics(self, admin_client):
        AuditRecorder.record('system', 'archived', 'Job', submodule='log_archived')

        response = admin_client.get('/v1/audit-logs/statistics')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['total_events'] == 1
        assert len(response.data['daily_counts']) == 30
        assert response.data['daily_counts'][-1]['count'] == 1

    def test_statistics_window(self, admin_client):
        today = timezone.localdate()

        response = admin_client.get('/v1/audit-logs/statistics', {
            'start_date': (today - timedelta(days=6)).isoformat(),
            'end_date': today.isoformat(),
        })

        assert len(response.data['daily_counts']) == 7

    def test_modules(self, admin_client):
        response = admin_client.get('/v1/audit-logs/modules')

        assert response.status_code == status.HTTP_200_OK
        modules = {m['key']: m for m in response.data['modules']}
        assert 'roles_permissions' in modules
        submodules = [s['key'] for s in modules['roles_permissions']['submodules']]
        assert 'role_assigned' in submodules
        assert 'data_export' in [s['key'] for s in modules['security']['submodules']]


@pytest.mark.django_db
class TestAuditExportApi:
    """Test GET /v1/audit-logs/export."""

    def test_csv_download(self, auditor_client, user):
        AuditRecorder.record('system', 'archived', 'Job')

        response = auditor_client.get('/v1/audit-logs/export', {'format': 'csv'})

        assert response.status_code == status.HTTP_200_OK
        assert response['Content-Type'].startswith('text/csv')
        assert response['Content-Disposition'].startswith('attachment; filename="audit-logs-')
        rows = list(csv.reader(io.StringIO(streamed(response))))
        assert rows[0][0] == 'ID'
        assert rows[1][1] == 'Job'

        export_event = AuditEvent.objects.get(submodule='data_export')
        assert export_event.module == 'security'
        assert export_event.causer_id == user.id

    def test_json_download(self, auditor_client):
        AuditRecorder.record('system', 'archived', 'Job')

        response = auditor_client.get('/v1/audit-logs/export', {'format': 'json'})

        assert response['Content-Type'].startswith('application/json')
        assert response['Content-Disposition'].endswith('.json"')
        assert [doc['description'] for doc in json.loads(streamed(response))] == ['Job']

    def test_unknown_format(self, auditor_client):
        response = auditor_client.get('/v1/audit-logs/export', {'format': 'xml'})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_requires_export_scope(self, api_client, custom_role, user, authenticate):
        RoleAssignmentEngine.assign(user.id, custom_role.slug)
        authenticate(api_client, user)

        response = api_client.get('/v1/audit-logs/export')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_rate_limited(self, auditor_client):
        for _ in range(10):
            auditor_client.get('/v1/audit-logs/export')

        response = auditor_client.get('/v1/audit-logs/export')

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS


@pytest.mark.django_db
class TestAuditCleanupApi:
    """Test POST /v1/audit-logs/cleanup."""

    def test_below_floor_rejected(self, admin_client):
        old = AuditEvent.objects.create(
            module='system', action='note', description='Old',
            created_at=timezone.now() - timedelta(days=200),
        )

        response = admin_client.post('/v1/audit-logs/cleanup', {'days': 29}, format='json')

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.data['error']['code'] == 'INVALID_RETENTION'
        assert AuditEvent.objects.filter(id=old.id).exists()

    def test_cleanup(self, admin_client):
        AuditEvent.objects.create(
            module='system', action='note', description='Old',
            created_at=timezone.now() - timedelta(days=200),
        )

        response = admin_client.post('/v1/audit-logs/cleanup', {'days': 90}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {'deleted_count': 1}

    def test_requires_manage_scope(self, auditor_client):
        response = auditor_client.post('/v1/audit-logs/cleanup', {'days': 90}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_missing_days(self, admin_client):
        response = admin_client.post('/v1/audit-logs/cleanup', {}, format='json')

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.data['error']['code'] == 'VALIDATION_FAILED'


@pytest.mark.django_db
class TestLoginAuditApi:
    """Test /v1/login-audits."""

    def test_record_successful_login(self, admin_client, user, tenant):
        response = admin_client.post('/v1/login-audits', {
            'success': True,
            'login_method': 'api',
            'user_id': str(user.id),
            'tenant_id': str(tenant.id),
            'ip_address': '192.0.2.44',
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['is_successful'] is True
        assert response.data['session_key'].startswith('api_')
        assert ActiveSession.objects.filter(session_key=response.data['session_key']).exists()

    def test_record_failed_login(self, admin_client):
        response = admin_client.post('/v1/login-audits', {
            'success': False,
            'email': 'someone@example.com',
            'failure_reason': 'Bad OTP',
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['failure_reason'] == 'Bad OTP'
        assert response.data['session_key'] is None

    def test_record_requires_identity(self, admin_client):
        response = admin_client.post('/v1/login-audits', {'success': False}, format='json')

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_record_success_unknown_user(self, admin_client):
        response = admin_client.post('/v1/login-audits', {
            'success': True,
            'user_id': str(uuid.uuid4()),
        }, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_record_requires_sessions_scope(self, auditor_client, user):
        response = auditor_client.post('/v1/login-audits', {
            'success': True, 'user_id': str(user.id),
        }, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_logout(self, admin_client, user):
        created = admin_client.post('/v1/login-audits', {
            'success': True, 'user_id': str(user.id),
        }, format='json')

        response = admin_client.post('/v1/login-audits/logout', {
            'session_key': created.data['session_key'],
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['logout_at'] is not None
        assert response.data['session_duration'] is not None

    def test_logout_unknown_session(self, admin_client):
        response = admin_client.post('/v1/login-audits/logout', {'session_key': 'missing'}, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_export(self, admin_client, user):
        LoginAudit.objects.create(user_id=user.id, email=user.email, is_successful=True)

        response = admin_client.get('/v1/login-audits/export')

        assert response.status_code == status.HTTP_200_OK
        assert response['Content-Disposition'].startswith('attachment; filename="login_analytics_')
        rows = list(csv.reader(io.StringIO(streamed(response))))
        assert rows[0][0] == 'Date/Time'
        assert rows[1][2] == 'user@example.com'

    def test_cleanup_below_floor(self, admin_client):
        response = admin_client.post('/v1/login-audits/cleanup', {'days': 10}, format='json')

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.data['error']['code'] == 'INVALID_RETENTION'

    def test_cleanup(self, admin_client, user):
        LoginAudit.objects.create(
            user_id=user.id, email=user.email, is_successful=True,
            login_at=timezone.now() - timedelta(days=100),
        )

        response = admin_client.post('/v1/login-audits/cleanup', {'days': 30}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['audit_records_deleted'] == 1
