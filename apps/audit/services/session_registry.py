"""
Live console session registry.

Sessions move from active to expired (time-based) or from active to
terminated (explicit logout). Every transition is a conditional UPDATE on
status='active', so an ended session can never be revived.
"""
import logging
import secrets
from datetime import timedelta
from typing import Dict, Optional

from django.conf import settings
from django.db.models import Count
from django.utils import timezone

from apps.audit.models import ActiveSession, LOGIN_METHOD_CHOICES

logger = logging.getLogger(__name__)


class ActiveSessionRegistry:
    """Service for the ActiveSession lifecycle."""

    @classmethod
    def lifetime(cls):
        return timedelta(minutes=settings.SESSION_LIFETIME_MINUTES)

    @classmethod
    def generate_session_key(cls, method: str = 'direct') -> str:
        """Opaque session key; API sessions are prefixed with 'api_'."""
        token = secrets.token_urlsafe(32)
        return f"api_{token}" if method == 'api' else token

    @classmethod
    def open_session(cls, user, tenant=None, method: str = 'direct', session_key: Optional[str] = None,
                     ip_address=None, user_agent: str = '', login_audit_id=None) -> ActiveSession:
        """
        Open a new active session for a user.

        Args:
            user: Session owner
            tenant: Tenant the session starts in (optional)
            method: Login method (sso, direct, api)
            session_key: Caller-supplied key; generated when omitted
            ip_address: Client IP address
            user_agent: Client user agent
            login_audit_id: LoginAudit row that opened the session

        Returns:
            The created ActiveSession
        """
        now = timezone.now()
        session = ActiveSession.objects.create(
            user=user,
            tenant=tenant,
            session_key=session_key or cls.generate_session_key(method),
            login_method=method,
            login_audit_id=login_audit_id,
            ip_address=ip_address,
            user_agent=user_agent or '',
            started_at=now,
            last_activity=now,
            expires_at=now + cls.lifetime(),
        )

        logger.info(
            f"Session opened for user {user.id}",
            extra={
                'user_id': str(user.id),
                'tenant_id': str(tenant.id) if tenant else None,
                'login_method': method,
            }
        )
        return session

    @classmethod
    def touch(cls, session_key: str, tenant_id=None, activity_data: Optional[dict] = None) -> bool:
        """
        Record activity on a session and extend its expiry.

        A session that is already past its expiry is marked expired instead.

        Returns:
            True if the session is active after the call, False otherwise
            (unknown, expired or terminated)
        """
        now = timezone.now()
        live = ActiveSession.objects.open().filter(session_key=session_key)

        updates = {
            'last_activity': now,
            'expires_at': now + cls.lifetime(),
            'updated_at': now,
        }
        if tenant_id:
            updates['tenant_id'] = tenant_id
        if activity_data is not None:
            updates['activity_data'] = activity_data

        if live.filter(expires_at__gt=now).update(**updates):
            return True

        expired = live.filter(expires_at__lte=now).update(
            status=ActiveSession.STATUS_EXPIRED,
            ended_at=now,
            updated_at=now,
        )
        if expired:
            logger.info("Session expired on access", extra={'session_key_prefix': session_key[:8]})
        return False

    @classmethod
    def terminate(cls, session_key: str) -> Optional[ActiveSession]:
        """
        End an active session on logout.

        Returns:
            The terminated session, or None if no active session had the key
        """
        now = timezone.now()
        updated = ActiveSession.objects.open().filter(session_key=session_key).update(
            status=ActiveSession.STATUS_TERMINATED,
            ended_at=now,
            updated_at=now,
        )
        if not updated:
            return None
        return ActiveSession.objects.get(session_key=session_key)

    @classmethod
    def expire_stale(cls, now=None) -> int:
        """Expire active sessions past their expiry or idle beyond SESSION_MAX_IDLE_HOURS."""
        now = now or timezone.now()
        count = ActiveSession.objects.stale(now).update(
            status=ActiveSession.STATUS_EXPIRED,
            ended_at=now,
            updated_at=now,
        )
        if count:
            logger.info(f"Expired {count} stale sessions", extra={'expired_count': count})
        return count

    @classmethod
    def purge_ended(cls, now=None) -> int:
        """
        Expire stale sessions, then delete every expired or terminated row.

        Returns:
            Number of session rows deleted
        """
        cls.expire_stale(now)
        deleted, _ = ActiveSession.objects.ended().delete()
        return deleted

    @classmethod
    def active_sessions(cls, tenant_id=None):
        """Active, unexpired sessions seen within the online window."""
        queryset = ActiveSession.objects.online().select_related('user', 'tenant')
        if tenant_id:
            queryset = queryset.for_tenant(tenant_id)
        return queryset.order_by('-last_activity')

    @classmethod
    def grouped_by_method(cls, tenant_id=None) -> Dict[str, int]:
        """Online session count per login method, every method present."""
        counts = {method: 0 for method, _ in LOGIN_METHOD_CHOICES}
        rows = (
            cls.active_sessions(tenant_id)
            .order_by().values('login_method').annotate(count=Count('id'))
        )
        for row in rows:
            counts[row['login_method']] = row['count']
        return counts

    @classmethod
    def session_statistics(cls, tenant_id=None) -> Dict[str, object]:
        """Headline figures about online sessions."""
        online = cls.active_sessions(tenant_id)
        by_tenant = {
            str(row['tenant_id']): row['count']
            for row in online.filter(tenant__isnull=False)
            .order_by().values('tenant_id').annotate(count=Count('id'))
        }
        return {
            'active_sessions': online.count(),
            'active_users': online.order_by().values('user_id').distinct().count(),
            'by_method': cls.grouped_by_method(tenant_id),
            'by_tenant': by_tenant,
        }

    @classmethod
    def user_sessions(cls, user_id, active_only: bool = True):
        """A user's sessions, most recently active first."""
        queryset = ActiveSession.objects.filter(user_id=user_id).select_related('tenant')
        if active_only:
            queryset = queryset.online()
        return queryset.order_by('-last_activity')

    @classmethod
    def user_has_active_session(cls, user_id, tenant_id=None) -> bool:
        queryset = ActiveSession.objects.online().filter(user_id=user_id)
        if tenant_id:
            queryset = queryset.for_tenant(tenant_id)
        return queryset.exists()
