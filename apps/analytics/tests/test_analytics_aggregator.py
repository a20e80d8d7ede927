"""
Tests for AnalyticsAggregator read-side composition.
"""
import uuid
from datetime import timedelta

import pytest
from django.utils import timezone

from apps.analytics.services import AnalyticsAggregator
from apps.audit.models import LoginAudit
from apps.audit.services import AuditRecorder, LoginAuditTracker
from apps.core.exceptions import NotFound
from apps.rbac.services import RoleAssignmentEngine


def login(user, tenant=None, method='direct', days_ago=0):
    """Record a successful login, optionally moved into the past."""
    audit = LoginAuditTracker.record_attempt(
        success=True, method=method, user_id=user.id, tenant_id=tenant.id if tenant else None
    )
    if days_ago:
        LoginAudit.objects.filter(id=audit.id).update(login_at=timezone.now() - timedelta(days=days_ago))
    return audit


@pytest.mark.django_db
class TestDashboard:
    """Test headline figures."""

    def test_dashboard_figures(self, user, admin_user, tenant):
        login(user, tenant)
        login(admin_user, method='api')
        LoginAuditTracker.record_attempt(success=False, email='intruder@example.com')
        AuditRecorder.record('system', 'archived', 'Job')

        data = AnalyticsAggregator().dashboard()

        assert data['tenant_id'] is None
        assert data['active_users'] == 2
        assert data['active_sessions'] == 2
        assert data['today_logins'] == 2
        assert data['yesterday_logins'] == 0
        assert data['login_trend'] == 100.0
        assert data['total_logins_30d'] == 2
        assert data['unique_users_30d'] == 2
        assert data['failed_logins_30d'] == 1
        assert data['active_by_tenant'] == {str(tenant.id): 1}
        assert data['logins_by_method'] == {'direct': 1, 'api': 1}
        assert len(data['recent_logins']) == 3
        assert data['audit_summary']['total_events_30d'] == 1
        assert data['audit_summary']['by_module'] == {'system': 1}

    def test_login_trend_against_yesterday(self, user):
        login(user)
        login(user, days_ago=1)
        login(user, days_ago=1)

        data = AnalyticsAggregator().dashboard()

        assert data['today_logins'] == 1
        assert data['yesterday_logins'] == 2
        assert data['login_trend'] == -50.0

    def test_empty_dashboard(self, db):
        data = AnalyticsAggregator().dashboard()

        assert data['active_users'] == 0
        assert data['login_trend'] == 0.0
        assert data['recent_logins'] == []

    def test_recent_logins_carry_names(self, user):
        login(user)

        entry = AnalyticsAggregator().dashboard()['recent_logins'][0]

        assert entry['user_name'] == 'Test User'
        assert entry['email'] == 'user@example.com'
        assert entry['is_successful'] is True

    def test_scoped_to_tenant(self, user, tenant, other_tenant):
        login(user, tenant)
        login(user, other_tenant)
        AuditRecorder.record('system', 'note', 'Inside', tenant_id=tenant.id)
        AuditRecorder.record('system', 'note', 'Outside', tenant_id=other_tenant.id)

        data = AnalyticsAggregator(tenant).dashboard()

        assert data['tenant_id'] == str(tenant.id)
        assert data['total_logins_30d'] == 1
        assert data['active_sessions'] == 1
        assert data['audit_summary']['total_events_30d'] == 1

    def test_old_logins_outside_window(self, user):
        login(user, days_ago=45)

        data = AnalyticsAggregator().dashboard()

        assert data['total_logins_30d'] == 0


@pytest.mark.django_db
class TestUserTimeline:
    """Test the merged per-user timeline."""

    def test_unknown_user(self, db):
        with pytest.raises(NotFound):
            AnalyticsAggregator().user_timeline(uuid.uuid4())

    def test_malformed_user_id(self, db):
        with pytest.raises(NotFound):
            AnalyticsAggregator().user_timeline('abc')

    def test_timeline_newest_first(self, user, admin_user, console_catalog):
        login(user, days_ago=2)
        LoginAuditTracker.record_attempt(success=False, user_id=user.id, failure_reason='Bad OTP')
        RoleAssignmentEngine.assign(user.id, 'auditor', causer_id=admin_user.id)

        data = AnalyticsAggregator().user_timeline(user.id)

        assert data['user']['email'] == 'user@example.com'
        types = [entry['type'] for entry in data['timeline']]
        assert types == ['audit', 'login', 'login']
        assert data['timeline'][0]['details']['role'] == 'subject'
        assert data['timeline'][1]['description'] == 'Failed login: Bad OTP'
        assert data['timeline'][2]['description'] == 'Logged in via Direct'
        timestamps = [entry['timestamp'] for entry in data['timeline']]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_causer_role(self, user, admin_user, console_catalog):
        RoleAssignmentEngine.assign(user.id, 'auditor', causer_id=admin_user.id)

        data = AnalyticsAggregator().user_timeline(admin_user.id)

        assert data['timeline'][0]['details']['role'] == 'causer'

    def test_login_summary_and_sessions(self, user):
        login(user)
        login(user, days_ago=3)
        LoginAuditTracker.record_attempt(success=False, user_id=user.id)

        data = AnalyticsAggregator().user_timeline(user.id)

        assert data['login_summary']['total_logins'] == 2
        assert data['login_summary']['failed_logins'] == 1
        assert data['login_summary']['avg_session_duration'] is None
        assert len(data['active_sessions']) == 2

    def test_limit(self, user):
        for _ in range(5):
            login(user)

        data = AnalyticsAggregator().user_timeline(user.id, limit=3)

        assert len(data['timeline']) == 3

    def test_soft_deleted_user_still_reported(self, user):
        login(user)
        user.delete()

        data = AnalyticsAggregator().user_timeline(user.id)

        assert data['user']['is_active'] is False
        assert len(data['timeline']) == 1


@pytest.mark.django_db
class TestTenantRollup:
    """Test per-tenant rollup."""

    def test_unknown_tenant(self, db):
        with pytest.raises(NotFound) as exc_info:
            AnalyticsAggregator().tenant_rollup(uuid.uuid4())

        assert 'tenant_id' in exc_info.value.details

    def test_rollup(self, user, admin_user, tenant, other_tenant, console_catalog):
        login(user, tenant)
        login(user, tenant)
        login(admin_user, tenant)
        login(admin_user, other_tenant)
        LoginAuditTracker.record_attempt(success=False, email=user.email, tenant_id=tenant.id)
        RoleAssignmentEngine.assign(user.id, 'auditor', tenant_id=tenant.id)
        RoleAssignmentEngine.assign(user.id, 'tenant-admin', tenant_id=tenant.id)
        RoleAssignmentEngine.assign(admin_user.id, 'tenant-admin', tenant_id=tenant.id)
        RoleAssignmentEngine.assign(admin_user.id, 'auditor')

        data = AnalyticsAggregator().tenant_rollup(tenant.id)

        assert data['tenant']['slug'] == 'test-tenant'
        assert data['tenant']['is_active'] is True
        assert data['logins_30d'] == 3
        assert data['failed_logins_30d'] == 1
        assert data['unique_users_30d'] == 2
        assert data['active_sessions'] == 3
        assert data['top_users'][0] == {
            'user_id': str(user.id), 'name': 'Test User', 'email': 'user@example.com', 'count': 2,
        }
        assert data['assignments'] == {'total': 3, 'by_role': {'auditor': 1, 'tenant-admin': 2}}
        assert data['seats'] == {'max_users': 10, 'used': 2, 'available': 8}
        assert data['audit_events_30d'] == 3

    def test_no_seat_limit(self, other_tenant):
        data = AnalyticsAggregator().tenant_rollup(other_tenant.id)

        assert data['seats']['available'] is None


@pytest.mark.django_db
class TestLoginSeries:

    def test_trends_dense(self, user):
        login(user)
        login(user, days_ago=3)

        trends = AnalyticsAggregator().trends(7)

        assert len(trends) == 7
        assert trends[-1]['count'] == 1
        assert trends[-4]['count'] == 1
        assert sum(day['count'] for day in trends) == 2

    def test_hourly_has_every_hour(self, user):
        login(user)

        hours = AnalyticsAggregator().hourly(7)

        assert [h['hour'] for h in hours] == list(range(24))
        assert sum(h['count'] for h in hours) == 1
        assert hours[9]['label'] == '09:00'

    def test_failed_attempts(self, user):
        login(user)
        LoginAuditTracker.record_attempt(success=False, email='x@example.com', failure_reason='Locked')

        attempts = AnalyticsAggregator().failed_attempts()

        assert [a['failure_reason'] for a in attempts] == ['Locked']

    def test_sessions_by_method(self, user):
        login(user, method='sso')

        assert AnalyticsAggregator().sessions_by_method() == {'sso': 1, 'direct': 0, 'api': 0}
