"""
Analytics service for the admin console.

Provides read-side composition over login audits, active sessions, role
assignments and the audit trail:
- Dashboard headline figures
- Per-user activity timeline
- Per-tenant rollup
- Login trends, hourly distribution and failed attempts
"""
from datetime import timedelta

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Avg, Count, Max
from django.utils import timezone

from apps.audit.models import AuditEvent, LoginAudit
from apps.audit.services import ActiveSessionRegistry, LoginAuditTracker
from apps.audit.services.login_audit_tracker import clamp_limit
from apps.core.exceptions import NotFound

WINDOW_DAYS = 30


def _login_entry(audit, users=None):
    user = (users or {}).get(audit.user_id)
    return {
        'id': str(audit.id),
        'user_id': str(audit.user_id) if audit.user_id else None,
        'user_name': user.name if user else None,
        'email': audit.email or (user.email if user else ''),
        'tenant_id': str(audit.tenant_id) if audit.tenant_id else None,
        'login_method': audit.login_method,
        'is_successful': audit.is_successful,
        'failure_reason': audit.failure_reason or None,
        'ip_address': audit.ip_address,
        'login_at': audit.login_at.isoformat(),
        'logout_at': audit.logout_at.isoformat() if audit.logout_at else None,
        'session_duration': audit.session_duration,
    }


def _session_entry(session):
    return {
        'id': str(session.id),
        'tenant_id': str(session.tenant_id) if session.tenant_id else None,
        'login_method': session.login_method,
        'ip_address': session.ip_address,
        'started_at': session.started_at.isoformat(),
        'last_activity': session.last_activity.isoformat(),
        'expires_at': session.expires_at.isoformat(),
    }


def _percent_change(current, previous):
    if previous == 0:
        return 100.0 if current else 0.0
    return round((current - previous) / previous * 100, 2)


class AnalyticsAggregator:
    """
    Read-side analytics, optionally scoped to one tenant.

    Nothing is cached; every call reads current rows.
    """

    def __init__(self, tenant=None):
        """
        Initialize the aggregator.

        Args:
            tenant: Tenant to scope figures to, or None for the whole console
        """
        self.tenant = tenant

    @property
    def tenant_id(self):
        return self.tenant.id if self.tenant else None

    def _logins(self):
        queryset = LoginAudit.objects.all()
        if self.tenant_id:
            queryset = queryset.for_tenant(self.tenant_id)
        return queryset

    def _events(self):
        queryset = AuditEvent.objects.all()
        if self.tenant_id:
            queryset = queryset.filter(tenant_id=self.tenant_id)
        return queryset

    @staticmethod
    def _users(user_ids):
        from apps.rbac.models import User

        user_ids = {user_id for user_id in user_ids if user_id}
        if not user_ids:
            return {}
        return {user.id: user for user in User.objects_with_deleted.filter(id__in=user_ids)}

    def dashboard(self):
        """
        Headline figures for the console home page.

        Returns:
            dict with session figures, today's logins and their trend against
            yesterday, 30-day totals, per-tenant and per-method breakdowns,
            the latest logins and an audit summary
        """
        now = timezone.now()
        today = timezone.localdate()
        yesterday = today - timedelta(days=1)
        window_start = now - timedelta(days=WINDOW_DAYS)

        successful = self._logins().successful()
        today_logins = successful.filter(login_at__date=today).count()
        yesterday_logins = successful.filter(login_at__date=yesterday).count()

        window = successful.filter(login_at__gte=window_start)
        logins_by_tenant = {
            str(row['tenant_id']): row['count']
            for row in window.filter(tenant_id__isnull=False)
            .order_by().values('tenant_id').annotate(count=Count('id'))
        }
        logins_by_method = {
            row['login_method']: row['count']
            for row in window.order_by().values('login_method').annotate(count=Count('id'))
        }

        sessions = ActiveSessionRegistry.session_statistics(self.tenant_id)

        recent = LoginAuditTracker.recent_activity(limit=10, tenant_id=self.tenant_id)
        users = self._users(audit.user_id for audit in recent)

        events = self._events()
        audit_window = events.filter(created_at__gte=window_start)

        return {
            'generated_at': now.isoformat(),
            'tenant_id': str(self.tenant_id) if self.tenant_id else None,
            'active_users': sessions['active_users'],
            'active_sessions': sessions['active_sessions'],
            'today_logins': today_logins,
            'yesterday_logins': yesterday_logins,
            'login_trend': _percent_change(today_logins, yesterday_logins),
            'total_logins_30d': window.count(),
            'unique_users_30d': window.order_by().values('user_id').distinct().count(),
            'failed_logins_30d': self._logins().failed().filter(login_at__gte=window_start).count(),
            'active_by_tenant': sessions['by_tenant'],
            'active_by_method': sessions['by_method'],
            'logins_by_tenant': logins_by_tenant,
            'logins_by_method': logins_by_method,
            'recent_logins': [_login_entry(audit, users) for audit in recent],
            'audit_summary': {
                'total_events_30d': audit_window.count(),
                'today_events': events.filter(created_at__date=today).count(),
                'by_module': {
                    row['module']: row['count']
                    for row in audit_window.order_by().values('module').annotate(count=Count('id'))
                },
            },
        }

    def user_timeline(self, user_id, limit=50):
        """
        Activity of one user: login summary, live sessions and a merged
        newest-first list of logins and audit events the user caused or was
        the subject of.

        Raises:
            NotFound: if the user does not exist
        """
        from apps.rbac.models import User

        limit = clamp_limit(limit)
        try:
            user = User.objects_with_deleted.filter(id=user_id).first()
        except (ValueError, DjangoValidationError):
            user = None
        if user is None:
            raise NotFound('User not found', details={'user_id': str(user_id)})

        logins = self._logins().filter(user_id=user.id)
        summary = logins.successful().aggregate(
            total_logins=Count('id'),
            last_login_at=Max('login_at'),
            avg_session_duration=Avg('session_duration'),
        )

        timeline = [
            {
                'type': 'login',
                'timestamp': audit.login_at,
                'description': (
                    f"Logged in via {audit.get_login_method_display()}" if audit.is_successful
                    else f"Failed login: {audit.failure_reason or 'unknown reason'}"
                ),
                'details': _login_entry(audit),
            }
            for audit in logins.order_by('-login_at', '-id')[:limit]
        ]
        timeline += [
            {
                'type': 'audit',
                'timestamp': event.created_at,
                'description': event.description,
                'details': {
                    'id': str(event.id),
                    'module': event.module,
                    'submodule': event.submodule,
                    'action': event.action,
                    'role': 'causer' if event.causer_id == user.id else 'subject',
                    'tenant_id': str(event.tenant_id) if event.tenant_id else None,
                },
            }
            for event in self._events().involving_user(user.id).order_by('-created_at', '-id')[:limit]
        ]
        timeline.sort(key=lambda entry: entry['timestamp'], reverse=True)
        timeline = timeline[:limit]
        for entry in timeline:
            entry['timestamp'] = entry['timestamp'].isoformat()

        sessions = ActiveSessionRegistry.user_sessions(user.id)
        if self.tenant_id:
            sessions = sessions.filter(tenant_id=self.tenant_id)

        avg_duration = summary['avg_session_duration']
        return {
            'user': {
                'id': str(user.id),
                'name': user.name,
                'email': user.email,
                'is_active': user.is_active and not user.is_deleted,
            },
            'login_summary': {
                'total_logins': summary['total_logins'],
                'failed_logins': logins.failed().count(),
                'last_login_at': summary['last_login_at'].isoformat() if summary['last_login_at'] else None,
                'avg_session_duration': round(avg_duration, 2) if avg_duration is not None else None,
            },
            'active_sessions': [_session_entry(session) for session in sessions],
            'timeline': timeline,
        }

    def tenant_rollup(self, tenant_id):
        """
        Figures for one tenant over the last 30 days.

        Raises:
            NotFound: if the tenant does not exist
        """
        from apps.rbac.models import RoleAssignment
        from apps.tenants.models import Tenant

        try:
            tenant = Tenant.objects.filter(id=tenant_id).first()
        except (ValueError, DjangoValidationError):
            tenant = None
        if tenant is None:
            raise NotFound('Tenant not found', details={'tenant_id': str(tenant_id)})

        since = timezone.now() - timedelta(days=WINDOW_DAYS)
        logins = LoginAudit.objects.for_tenant(tenant.id).filter(login_at__gte=since)
        successful = logins.successful()

        top_rows = list(
            successful.filter(user_id__isnull=False)
            .order_by().values('user_id').annotate(count=Count('id'))
            .order_by('-count', 'user_id')[:10]
        )
        users = self._users(row['user_id'] for row in top_rows)
        top_users = [
            {
                'user_id': str(row['user_id']),
                'name': users[row['user_id']].name if row['user_id'] in users else 'Unknown',
                'email': users[row['user_id']].email if row['user_id'] in users else '',
                'count': row['count'],
            }
            for row in top_rows
        ]

        assignments = RoleAssignment.objects.for_tenant(tenant)
        by_role = {
            row['role__slug']: row['count']
            for row in assignments.order_by().values('role__slug').annotate(count=Count('id'))
        }
        seats_used = assignments.order_by().values('user_id').distinct().count()

        return {
            'tenant': {
                'id': str(tenant.id),
                'name': tenant.name,
                'slug': tenant.slug,
                'status': tenant.status,
                'is_active': tenant.is_active(),
            },
            'logins_30d': successful.count(),
            'failed_logins_30d': logins.failed().count(),
            'unique_users_30d': successful.order_by().values('user_id').distinct().count(),
            'active_sessions': ActiveSessionRegistry.active_sessions(tenant.id).count(),
            'top_users': top_users,
            'assignments': {
                'total': sum(by_role.values()),
                'by_role': by_role,
            },
            'seats': {
                'max_users': tenant.max_users,
                'used': seats_used,
                'available': max(tenant.max_users - seats_used, 0) if tenant.max_users is not None else None,
            },
            'audit_events_30d': AuditEvent.objects.filter(tenant_id=tenant.id, created_at__gte=since).count(),
        }

    def trends(self, days=7):
        return LoginAuditTracker.trends(days, tenant_id=self.tenant_id)

    def hourly(self, days=7):
        return LoginAuditTracker.hourly_distribution(days, tenant_id=self.tenant_id)

    def failed_attempts(self, limit=50):
        attempts = LoginAuditTracker.failed_attempts(limit, tenant_id=self.tenant_id)
        return [_login_entry(audit) for audit in attempts]

    def recent_activity(self, limit=50):
        recent = LoginAuditTracker.recent_activity(limit, tenant_id=self.tenant_id)
        users = self._users(audit.user_id for audit in recent)
        return [_login_entry(audit, users) for audit in recent]

    def sessions_by_method(self):
        return ActiveSessionRegistry.grouped_by_method(self.tenant_id)
