"""
Login audit service.

LoginAuditTracker records every login attempt, stamps logout facts when the
matching session ends, and answers the login-side analytics questions
(recent activity, failures, dense daily trends, hourly histogram).
"""
import logging
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Count
from django.db.models.functions import ExtractHour, TruncDate
from django.utils import timezone

from apps.audit.models import LOGIN_METHOD_CHOICES, LoginAudit
from apps.audit.services.audit_recorder import (
    AuditRecorder, dense_daily_series, valid_ip, validate_retention,
)
from apps.audit.services.session_registry import ActiveSessionRegistry
from apps.core.exceptions import NotFound, ValidationFailed
from apps.core.logging import SecurityLogger

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_REASON = 'Invalid credentials'
MAX_LIMIT = 500
MAX_DAYS = 366


def clamp_limit(limit, default=50) -> int:
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = default
    return max(1, min(limit, MAX_LIMIT))


def validate_days(days, default=7) -> int:
    """
    Window length in days for the login series.

    None falls back to the default; anything else must be an integer in
    1..MAX_DAYS so the series has exactly that many entries.

    Raises:
        ValidationFailed: non-integer or out-of-range value
    """
    if days is None or days == '':
        return default
    try:
        value = int(days)
    except (TypeError, ValueError):
        value = None
    if isinstance(days, bool) or value is None or not 1 <= value <= MAX_DAYS:
        raise ValidationFailed(
            f'days must be an integer between 1 and {MAX_DAYS}',
            details={'days': [f'Expected 1-{MAX_DAYS}, got {days!r}.']},
        )
    return value


class LoginAuditTracker:
    """Service for login attempts and the sessions they open."""

    @classmethod
    def record_attempt(cls, success: bool, method: str = 'direct', user_id=None, email: str = '',
                       tenant_id=None, ip_address=None, user_agent: str = '',
                       failure_reason: Optional[str] = None,
                       session_key: Optional[str] = None) -> LoginAudit:
        """
        Record a login attempt.

        A successful attempt must name a known user and opens an
        ActiveSession in the same transaction; API logins get a generated
        'api_' key when none is supplied. A failed attempt keeps its
        failure_reason and is also written to the security log.

        Raises:
            ValidationFailed: for an unknown login method
            NotFound: if a successful attempt names no known user
        """
        from apps.rbac.models import User
        from apps.tenants.models import Tenant

        valid_methods = [choice for choice, _ in LOGIN_METHOD_CHOICES]
        if method not in valid_methods:
            raise ValidationFailed(
                f"Unknown login method '{method}'",
                details={'login_method': [f"Must be one of: {', '.join(valid_methods)}."]},
            )

        user = None
        if user_id:
            user = User.objects.filter(id=user_id).first()
        elif email:
            user = User.objects.by_email(email)

        tenant = Tenant.objects.filter(id=tenant_id).first() if tenant_id else None
        ip_address = valid_ip(ip_address)
        now = timezone.now()

        if not success:
            reason = failure_reason or DEFAULT_FAILURE_REASON
            audit = LoginAudit.objects.create(
                user_id=user.id if user else None,
                email=(email or (user.email if user else ''))[:254],
                tenant_id=tenant.id if tenant else None,
                login_method=method,
                ip_address=ip_address,
                user_agent=user_agent or '',
                is_successful=False,
                failure_reason=reason[:255],
                login_at=now,
            )
            SecurityLogger.log_failed_login(
                email=email or (user.email if user else ''),
                ip_address=ip_address,
                user_agent=user_agent,
                reason=reason,
                tenant_id=str(tenant.id) if tenant else None,
            )
            return audit

        if user is None:
            raise NotFound(
                'A successful login must reference an existing user',
                details={'user_id': str(user_id) if user_id else None, 'email': email or None},
            )

        session_key = session_key or ActiveSessionRegistry.generate_session_key(method)

        with transaction.atomic():
            audit = LoginAudit.objects.create(
                user_id=user.id,
                email=user.email,
                tenant_id=tenant.id if tenant else None,
                login_method=method,
                ip_address=ip_address,
                user_agent=user_agent or '',
                session_key=session_key,
                is_successful=True,
                login_at=now,
            )
            ActiveSessionRegistry.open_session(
                user,
                tenant=tenant,
                method=method,
                session_key=session_key,
                ip_address=ip_address,
                user_agent=user_agent,
                login_audit_id=audit.id,
            )

        logger.info(
            f"Login recorded for user {user.id}",
            extra={
                'user_id': str(user.id),
                'tenant_id': str(tenant.id) if tenant else None,
                'login_method': method,
            }
        )
        return audit

    @classmethod
    def record_logout(cls, session_key: str) -> Optional[LoginAudit]:
        """
        Terminate the session and stamp logout facts on its login audit.

        Returns:
            The updated LoginAudit, or None if no open audit row matched
        """
        if not session_key:
            return None

        now = timezone.now()
        with transaction.atomic():
            ActiveSessionRegistry.terminate(session_key)

            audit = (
                LoginAudit.objects.select_for_update()
                .filter(session_key=session_key, is_successful=True, logout_at__isnull=True)
                .order_by('-login_at')
                .first()
            )
            if audit is None:
                return None

            audit.logout_at = now
            audit.session_duration = max(int((now - audit.login_at).total_seconds()), 0)
            audit.save(update_fields=['logout_at', 'session_duration', 'updated_at'])

        logger.info(
            "Logout recorded",
            extra={'user_id': str(audit.user_id), 'session_duration': audit.session_duration}
        )
        return audit

    @classmethod
    def _scoped(cls, tenant_id=None):
        queryset = LoginAudit.objects.all()
        if tenant_id:
            queryset = queryset.for_tenant(tenant_id)
        return queryset

    @classmethod
    def recent_activity(cls, limit=50, tenant_id=None) -> List[LoginAudit]:
        """Latest login attempts, newest first."""
        return list(cls._scoped(tenant_id).order_by('-login_at', '-id')[:clamp_limit(limit)])

    @classmethod
    def failed_attempts(cls, limit=50, tenant_id=None) -> List[LoginAudit]:
        """Latest failed attempts, newest first. No lockout decision is made here."""
        return list(cls._scoped(tenant_id).failed().order_by('-login_at', '-id')[:clamp_limit(limit)])

    @classmethod
    def trends(cls, days=7, tenant_id=None) -> List[Dict[str, Any]]:
        """
        Successful logins per day.

        Returns exactly `days` entries ending today, ascending by date, with
        zero counts for days without logins.
        """
        days = validate_days(days)
        end_date = timezone.localdate()
        start_date = end_date - timedelta(days=days - 1)

        rows = (
            cls._scoped(tenant_id).successful()
            .filter(login_at__date__gte=start_date, login_at__date__lte=end_date)
            .annotate(day=TruncDate('login_at'))
            .order_by().values('day').annotate(count=Count('id'))
        )
        return dense_daily_series({row['day']: row['count'] for row in rows}, start_date, end_date)

    @classmethod
    def hourly_distribution(cls, days=7, tenant_id=None) -> List[Dict[str, Any]]:
        """Successful logins per hour of day over the last `days` days, all 24 hours present."""
        since = timezone.now() - timedelta(days=validate_days(days))
        rows = (
            cls._scoped(tenant_id).successful()
            .filter(login_at__gte=since)
            .annotate(hour=ExtractHour('login_at'))
            .order_by().values('hour').annotate(count=Count('id'))
        )
        counts = {row['hour']: row['count'] for row in rows}
        return [
            {'hour': hour, 'count': counts.get(hour, 0), 'label': '%02d:00' % hour}
            for hour in range(24)
        ]

    @classmethod
    def statistics(cls, start=None, end=None, tenant_id=None) -> Dict[str, Any]:
        """Successful logins between start and end (default: last 30 days)."""
        end = end or timezone.now()
        start = start or (end - timedelta(days=30))
        logins = cls._scoped(tenant_id).successful().between(start, end)

        by_method = {method: 0 for method, _ in LOGIN_METHOD_CHOICES}
        for row in logins.order_by().values('login_method').annotate(count=Count('id')):
            by_method[row['login_method']] = row['count']

        by_tenant = {
            str(row['tenant_id']): row['count']
            for row in logins.filter(tenant_id__isnull=False)
            .order_by().values('tenant_id').annotate(count=Count('id'))
        }

        return {
            'start': start.isoformat(),
            'end': end.isoformat(),
            'total_logins': logins.count(),
            'unique_users': logins.order_by().values('user_id').distinct().count(),
            'failed_logins': cls._scoped(tenant_id).failed().between(start, end).count(),
            'by_method': by_method,
            'by_tenant': by_tenant,
        }

    @classmethod
    def cleanup(cls, min_age_days, causer_id=None, request=None) -> Dict[str, int]:
        """
        Delete login audits older than min_age_days and purge ended sessions.

        Raises:
            InvalidRetention: if min_age_days is below the retention floor;
                nothing is deleted in that case
        """
        validate_retention(min_age_days, causer_id)

        cutoff = timezone.now() - timedelta(days=min_age_days)
        with transaction.atomic():
            audit_deleted, _ = LoginAudit.objects.older_than(cutoff).delete()
            sessions_deleted = ActiveSessionRegistry.purge_ended()

        result = {
            'audit_records_deleted': audit_deleted,
            'expired_sessions_deleted': sessions_deleted,
        }

        logger.info(
            f"Login audit cleanup removed {audit_deleted} records and {sessions_deleted} sessions",
            extra={**result, 'retention_days': min_age_days}
        )

        AuditRecorder.record(
            'system', 'archived',
            f"Archived {audit_deleted} login audits older than {min_age_days} days "
            f"and purged {sessions_deleted} ended sessions",
            submodule='log_archived',
            causer_id=causer_id,
            properties={**result, 'retention_days': min_age_days, 'cutoff': cutoff},
            request=request,
        )
        return result

    @classmethod
    def export_window(cls, start_date=None, end_date=None):
        """Resolve an export window to aware datetimes (default: last 30 days)."""
        tz = timezone.get_current_timezone()
        end_date = end_date or timezone.localdate()
        start_date = start_date or (end_date - timedelta(days=30))
        if start_date > end_date:
            raise ValidationFailed(
                'start_date must not be after end_date',
                details={'start_date': ['Must not be after end_date.']},
            )
        start = timezone.make_aware(datetime.combine(start_date, time.min), tz)
        end = timezone.make_aware(datetime.combine(end_date, time.max), tz)
        return start, end

    @classmethod
    def export(cls, start=None, end=None, tenant_id=None, limit: Optional[int] = None):
        """Stream login audits between start and end as CSV lines, newest first."""
        from apps.audit.services.exports import stream_login_csv

        cap = settings.AUDIT_EXPORT_MAX_ROWS
        if limit is not None:
            cap = max(0, min(int(limit), cap))

        queryset = cls._scoped(tenant_id).order_by('-login_at', '-id')
        if start is not None and end is not None:
            queryset = queryset.between(start, end)
        return stream_login_csv(queryset, cap)
