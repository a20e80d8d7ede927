"""
Tests for ActiveSessionRegistry and the session lifecycle.
"""
from datetime import timedelta

import pytest
from django.utils import timezone

from apps.audit.models import ActiveSession
from apps.audit.services import ActiveSessionRegistry


@pytest.fixture
def session(user, tenant):
    return ActiveSessionRegistry.open_session(user, tenant=tenant, method='direct', ip_address='192.0.2.10')


def backdate(session, **deltas):
    """Shift a session's timestamps into the past."""
    now = timezone.now()
    ActiveSession.objects.filter(id=session.id).update(
        **{field: now - delta for field, delta in deltas.items()}
    )
    session.refresh_from_db()
    return session


@pytest.mark.django_db
class TestOpenSession:

    def test_open_session(self, session, user, tenant):
        assert session.status == ActiveSession.STATUS_ACTIVE
        assert session.user == user
        assert session.tenant == tenant
        assert session.session_key
        assert session.expires_at - session.started_at == timedelta(minutes=120)
        assert session.is_active

    def test_generated_keys(self, db):
        assert ActiveSessionRegistry.generate_session_key('api').startswith('api_')
        assert not ActiveSessionRegistry.generate_session_key('sso').startswith('api_')
        assert ActiveSessionRegistry.generate_session_key() != ActiveSessionRegistry.generate_session_key()


@pytest.mark.django_db
class TestTouch:
    """Test activity on a session."""

    def test_touch_extends_expiry(self, session):
        backdate(session, last_activity=timedelta(minutes=10))
        old_expiry = session.expires_at

        assert ActiveSessionRegistry.touch(session.session_key, activity_data={'path': '/v1/roles'}) is True

        session.refresh_from_db()
        assert session.expires_at > old_expiry
        assert session.activity_data == {'path': '/v1/roles'}

    def test_touch_past_expiry_marks_expired(self, session):
        backdate(session, expires_at=timedelta(minutes=1))

        assert ActiveSessionRegistry.touch(session.session_key) is False

        session.refresh_from_db()
        assert session.status == ActiveSession.STATUS_EXPIRED
        assert session.ended_at is not None

    def test_touch_unknown_key(self, db):
        assert ActiveSessionRegistry.touch('missing') is False


@pytest.mark.django_db
class TestLifecycle:
    """Ended sessions never return to active."""

    def test_terminate(self, session):
        terminated = ActiveSessionRegistry.terminate(session.session_key)

        assert terminated.status == ActiveSession.STATUS_TERMINATED
        assert terminated.ended_at is not None

    def test_terminated_session_cannot_be_touched(self, session):
        ActiveSessionRegistry.terminate(session.session_key)

        assert ActiveSessionRegistry.touch(session.session_key) is False
        session.refresh_from_db()
        assert session.status == ActiveSession.STATUS_TERMINATED

    def test_expired_session_cannot_be_terminated(self, session):
        backdate(session, expires_at=timedelta(minutes=1))
        ActiveSessionRegistry.expire_stale()

        assert ActiveSessionRegistry.terminate(session.session_key) is None
        session.refresh_from_db()
        assert session.status == ActiveSession.STATUS_EXPIRED

    def test_terminate_twice(self, session):
        ActiveSessionRegistry.terminate(session.session_key)

        assert ActiveSessionRegistry.terminate(session.session_key) is None

    def test_expire_stale_idle_sessions(self, session, user):
        fresh = ActiveSessionRegistry.open_session(user)
        backdate(session, last_activity=timedelta(hours=25))

        assert ActiveSessionRegistry.expire_stale() == 1

        session.refresh_from_db()
        fresh.refresh_from_db()
        assert session.status == ActiveSession.STATUS_EXPIRED
        assert fresh.status == ActiveSession.STATUS_ACTIVE

    def test_purge_ended(self, session, user):
        live = ActiveSessionRegistry.open_session(user)
        ActiveSessionRegistry.terminate(session.session_key)

        assert ActiveSessionRegistry.purge_ended() == 1
        assert list(ActiveSession.objects.values_list('id', flat=True)) == [live.id]


@pytest.mark.django_db
class TestSessionQueries:

    def test_active_sessions_excludes_idle(self, session, user):
        idle = ActiveSessionRegistry.open_session(user)
        backdate(idle, last_activity=timedelta(minutes=45))

        active = list(ActiveSessionRegistry.active_sessions())

        assert active == [session]
        assert not idle.is_active

    def test_grouped_by_method(self, session, user):
        ActiveSessionRegistry.open_session(user, method='api')
        ActiveSessionRegistry.open_session(user, method='api')

        assert ActiveSessionRegistry.grouped_by_method() == {'sso': 0, 'direct': 1, 'api': 2}

    def test_session_statistics_by_tenant(self, session, user, tenant):
        ActiveSessionRegistry.open_session(user)

        stats = ActiveSessionRegistry.session_statistics()

        assert stats['active_sessions'] == 2
        assert stats['active_users'] == 1
        assert stats['by_tenant'] == {str(tenant.id): 1}

    def test_tenant_scoped_queries(self, session, user, tenant, other_tenant):
        ActiveSessionRegistry.open_session(user, tenant=other_tenant)

        assert ActiveSessionRegistry.active_sessions(tenant.id).count() == 1
        assert ActiveSessionRegistry.user_has_active_session(user.id, tenant.id)

    def test_user_sessions(self, session, user):
        ActiveSessionRegistry.terminate(session.session_key)

        assert ActiveSessionRegistry.user_sessions(user.id).count() == 0
        assert ActiveSessionRegistry.user_sessions(user.id, active_only=False).count() == 1
