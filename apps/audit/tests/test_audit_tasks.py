"""
Tests for the retention and session housekeeping Celery tasks.
"""
from datetime import timedelta

import pytest
from django.utils import timezone

from apps.audit.models import ActiveSession, AuditEvent, LoginAudit
from apps.audit.services import ActiveSessionRegistry
from apps.audit.tasks import cleanup_retention, expire_sessions
from apps.core.exceptions import InvalidRetention


@pytest.mark.django_db
class TestCleanupRetention:

    def test_applies_configured_windows(self, user):
        AuditEvent.objects.create(
            module='system', action='note', description='Old',
            created_at=timezone.now() - timedelta(days=120),
        )
        AuditEvent.objects.create(module='system', action='note', description='Recent')
        LoginAudit.objects.create(
            user_id=user.id, email=user.email, is_successful=True,
            login_at=timezone.now() - timedelta(days=120),
        )

        result = cleanup_retention()

        assert result == {
            'audit_events_deleted': 1,
            'audit_records_deleted': 1,
            'expired_sessions_deleted': 0,
        }
        assert AuditEvent.objects.filter(description='Recent').exists()
        assert AuditEvent.objects.filter(submodule='log_archived').count() == 2

    def test_explicit_windows(self, db):
        AuditEvent.objects.create(
            module='system', action='note', description='Month old',
            created_at=timezone.now() - timedelta(days=40),
        )

        result = cleanup_retention(audit_days=35, login_days=35)

        assert result['audit_events_deleted'] == 1

    def test_misconfigured_window_refused(self, db, settings):
        settings.AUDIT_RETENTION_DAYS = 7
        AuditEvent.objects.create(
            module='system', action='note', description='Old',
            created_at=timezone.now() - timedelta(days=120),
        )

        with pytest.raises(InvalidRetention):
            cleanup_retention()

        assert AuditEvent.objects.filter(description='Old').exists()


@pytest.mark.django_db
class TestExpireSessions:

    def test_expires_stale_sessions(self, user):
        session = ActiveSessionRegistry.open_session(user)
        ActiveSession.objects.filter(id=session.id).update(expires_at=timezone.now() - timedelta(minutes=5))

        result = expire_sessions()

        assert result == {'expired_count': 1}
        session.refresh_from_db()
        assert session.status == ActiveSession.STATUS_EXPIRED
        event = AuditEvent.objects.get(submodule='sessions_expired')
        assert event.properties == {'expired_count': 1}

    def test_nothing_to_expire(self, user):
        ActiveSessionRegistry.open_session(user)

        assert expire_sessions() == {'expired_count': 0}
        assert not AuditEvent.objects.filter(submodule='sessions_expired').exists()
