"""
Audit trail service.

AuditRecorder appends AuditEvent rows for privileged actions and serves the
read side of the trail: filtered queries, statistics with dense daily
series, retention cleanup and streaming exports.
"""
import ipaddress
import json
import logging
import threading
from datetime import timedelta
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.paginator import EmptyPage, Paginator
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.db.models import Count
from django.db.models.functions import TruncDate
from django.utils import timezone

from apps.audit.models import AuditEvent
from apps.core.exceptions import InvalidRetention, ValidationFailed
from apps.core.logging import SecurityLogger

logger = logging.getLogger(__name__)


class AuditJSONEncoder(DjangoJSONEncoder):
    """DjangoJSONEncoder that also accepts sets and falls back to str()."""

    def default(self, o):
        if isinstance(o, (set, frozenset)):
            return sorted(str(item) for item in o)
        try:
            return super().default(o)
        except TypeError:
            return str(o)


def json_safe_properties(properties) -> Dict[str, Any]:
    """Coerce a properties bag into a JSON map with string keys."""
    if not properties:
        return {}
    if not isinstance(properties, dict):
        properties = {'value': properties}
    keyed = {str(key): value for key, value in properties.items()}
    return json.loads(json.dumps(keyed, cls=AuditJSONEncoder))


def request_context(request) -> Dict[str, Any]:
    """Extract IP address, user agent and request id from a request."""
    if request is None:
        return {
            'ip_address': None,
            'user_agent': '',
            'request_id': getattr(threading.current_thread(), 'request_id', None) or '',
        }

    meta = getattr(request, 'META', {}) or {}
    forwarded = meta.get('HTTP_X_FORWARDED_FOR', '')
    ip = forwarded.split(',')[0].strip() if forwarded else meta.get('REMOTE_ADDR')

    return {
        'ip_address': valid_ip(ip),
        'user_agent': (meta.get('HTTP_USER_AGENT') or '')[:1000],
        'request_id': str(getattr(request, 'request_id', '') or '')[:64],
    }


def valid_ip(value) -> Optional[str]:
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(str(value).strip()))
    except ValueError:
        return None


def dense_daily_series(counts_by_day, start_date, end_date):
    """
    Zero-filled [{date, count}] for every day from start_date to end_date.

    Args:
        counts_by_day: Mapping of date -> count (missing days count as 0)
        start_date: First day (inclusive)
        end_date: Last day (inclusive)
    """
    series = []
    day = start_date
    while day <= end_date:
        series.append({'date': day.isoformat(), 'count': counts_by_day.get(day, 0)})
        day += timedelta(days=1)
    return series


def validate_retention(min_age_days, causer_id=None) -> int:
    """
    Check a cleanup age against the retention floor.

    Raises:
        InvalidRetention: if min_age_days is not an integer or is below
            AUDIT_RETENTION_FLOOR_DAYS
    """
    floor = settings.AUDIT_RETENTION_FLOOR_DAYS

    if isinstance(min_age_days, bool) or not isinstance(min_age_days, int):
        raise InvalidRetention(
            'Retention age must be a whole number of days',
            details={'min_age_days': min_age_days, 'floor_days': floor},
        )

    if min_age_days < floor:
        SecurityLogger.log_retention_violation(min_age_days, floor, causer_id)
        raise InvalidRetention(
            f'Records younger than {floor} days cannot be deleted',
            details={'min_age_days': min_age_days, 'floor_days': floor},
        )

    return min_age_days


class AuditRecorder:
    """
    Service for the audit trail.

    Writes happen inside the caller's transaction (as a savepoint) so an
    audit row commits together with the business mutation it describes,
    while a failed audit insert never aborts that mutation.
    """

    FILTER_KEYS = (
        'module', 'submodule', 'user_id', 'subject_type', 'subject_id',
        'tenant_id', 'start_date', 'end_date',
    )

    @classmethod
    def record(cls, module: str, action: str, description: str, *, submodule: str = '',
               causer_id=None, subject=None, subject_type: Optional[str] = None,
               subject_id=None, tenant_id=None, properties: Optional[dict] = None,
               request=None) -> Optional[AuditEvent]:
        """
        Append an audit event. Never raises.

        Args:
            module: Functional area (see apps.audit.modules)
            action: Verb describing the action
            description: Human-readable description (truncated to 500 chars)
            submodule: Finer grouping within the module
            causer_id: Acting user id; None for system actions
            subject: Model instance acted on (sets subject_type/subject_id)
            subject_type: Explicit subject type when no instance is at hand
            subject_id: Explicit subject id when no instance is at hand
            tenant_id: Tenant scope of the action
            properties: JSON-serialisable context
            request: Optional request for IP/user agent/request id

        Returns:
            The created AuditEvent, or None if the write failed
        """
        try:
            if subject is not None:
                subject_type = subject_type or subject.__class__.__name__
                subject_id = subject_id if subject_id is not None else subject.pk

            context = request_context(request)

            with transaction.atomic():
                event = AuditEvent.objects.create(
                    module=module,
                    submodule=submodule or '',
                    action=action,
                    description=(description or '')[:500],
                    causer_id=causer_id,
                    subject_type=subject_type or '',
                    subject_id='' if subject_id is None else str(subject_id),
                    tenant_id=tenant_id,
                    properties=json_safe_properties(properties),
                    ip_address=context['ip_address'],
                    user_agent=context['user_agent'],
                    request_id=context['request_id'],
                )
        except Exception:
            logger.warning(
                f"Failed to record audit event {module}/{submodule or '-'}",
                extra={
                    'module': module,
                    'submodule': submodule,
                    'causer_id': str(causer_id) if causer_id else None,
                },
                exc_info=True,
            )
            return None

        logger.debug(
            f"Audit event recorded: {module}/{submodule or '-'} {action}",
            extra={'audit_event_id': str(event.id)}
        )
        return event

    @classmethod
    def record_model_change(cls, module: str, submodule: str, action: str, instance,
                            old: Optional[dict] = None, new: Optional[dict] = None,
                            **kwargs) -> Optional[AuditEvent]:
        """
        Record a change to a model with before/after values.

        Only keys whose values differ end up in properties['changes'].
        """
        properties = dict(kwargs.pop('properties', None) or {})
        if old:
            properties['old'] = old
        if new:
            properties['new'] = new
        if old and new:
            changes = {
                key: {'old': old.get(key), 'new': value}
                for key, value in new.items()
                if old.get(key) != value
            }
            if changes:
                properties['changes'] = changes

        description = kwargs.pop('description', None) or (
            f"{action.capitalize()} {instance.__class__.__name__}"
        )
        return cls.record(
            module, action, description,
            submodule=submodule, subject=instance, properties=properties, **kwargs
        )

    @classmethod
    def record_failure(cls, module: str, submodule: str, operation: str, reason: str,
                       **kwargs) -> Optional[AuditEvent]:
        """Record an operation that was attempted and refused."""
        properties = dict(kwargs.pop('properties', None) or {})
        properties.update({
            'operation': operation,
            'failure_reason': reason,
            'success': False,
        })
        return cls.record(
            module, 'failed', f"Failed {operation}: {reason}",
            submodule=submodule, properties=properties, **kwargs
        )

    @classmethod
    def filter_events(cls, filters: Optional[dict] = None):
        """
        Build the filtered, newest-first queryset.

        Args:
            filters: Dict with optional module, submodule, user_id,
                subject_type, subject_id, tenant_id, start_date and
                end_date (dates, inclusive)
        """
        filters = {key: value for key, value in (filters or {}).items()
                   if key in cls.FILTER_KEYS and value not in (None, '')}

        queryset = AuditEvent.objects.all()

        if 'module' in filters:
            queryset = queryset.for_module(filters['module'], filters.get('submodule'))
        elif 'submodule' in filters:
            queryset = queryset.filter(submodule=filters['submodule'])
        if 'user_id' in filters:
            queryset = queryset.caused_by(filters['user_id'])
        if 'subject_type' in filters:
            queryset = queryset.for_subject(filters['subject_type'], filters.get('subject_id'))
        elif 'subject_id' in filters:
            queryset = queryset.filter(subject_id=str(filters['subject_id']))
        if 'tenant_id' in filters:
            queryset = queryset.filter(tenant_id=filters['tenant_id'])
        if 'start_date' in filters:
            queryset = queryset.filter(created_at__date__gte=filters['start_date'])
        if 'end_date' in filters:
            queryset = queryset.filter(created_at__date__lte=filters['end_date'])

        return queryset.order_by('-created_at', '-id')

    @classmethod
    def query(cls, filters: Optional[dict] = None, page: int = 1, per_page: int = 100) -> Dict[str, Any]:
        """
        Page through filtered events, newest first.

        per_page is clamped to 1..AUDIT_PAGE_MAX_SIZE. A page past the end
        returns an empty result list.

        Returns:
            dict with results, count, page, per_page and total_pages
        """
        per_page = max(1, min(int(per_page or 1), settings.AUDIT_PAGE_MAX_SIZE))
        page = max(1, int(page or 1))

        paginator = Paginator(cls.filter_events(filters), per_page)
        try:
            results = list(paginator.page(page).object_list)
        except EmptyPage:
            results = []

        return {
            'results': results,
            'count': paginator.count,
            'page': page,
            'per_page': per_page,
            'total_pages': paginator.num_pages,
        }

    @classmethod
    def statistics(cls, start_date=None, end_date=None, tenant_id=None) -> Dict[str, Any]:
        """
        Summarise the trail over a date window.

        The window defaults to the last 30 days ending today and may span at
        most AUDIT_STATISTICS_MAX_DAYS days. daily_counts holds one entry per
        day of the window, zero-filled and ascending.

        Raises:
            ValidationFailed: if the window is inverted or too long
        """
        today = timezone.localdate()
        end_date = end_date or today
        start_date = start_date or (end_date - timedelta(days=29))

        if start_date > end_date:
            raise ValidationFailed(
                'start_date must not be after end_date',
                details={'start_date': ['Must not be after end_date.']},
            )

        span = (end_date - start_date).days + 1
        if span > settings.AUDIT_STATISTICS_MAX_DAYS:
            raise ValidationFailed(
                f'Statistics window may span at most {settings.AUDIT_STATISTICS_MAX_DAYS} days',
                details={'end_date': [f'Window of {span} days is too long.']},
            )

        base = AuditEvent.objects.all()
        if tenant_id:
            base = base.filter(tenant_id=tenant_id)
        window = base.filter(created_at__date__gte=start_date, created_at__date__lte=end_date)

        by_module = {
            row['module']: row['count']
            for row in window.order_by().values('module').annotate(count=Count('id'))
        }
        by_submodule = {
            row['submodule']: row['count']
            for row in window.exclude(submodule='').order_by().values('submodule').annotate(count=Count('id'))
        }

        daily = {
            row['day']: row['count']
            for row in window.annotate(day=TruncDate('created_at'))
            .order_by().values('day').annotate(count=Count('id'))
        }

        top_causers = list(
            window.filter(causer_id__isnull=False)
            .order_by().values('causer_id').annotate(count=Count('id'))
            .order_by('-count', 'causer_id')[:10]
        )
        names = cls.causer_names([row['causer_id'] for row in top_causers])
        top_causers = [
            {
                'user_id': str(row['causer_id']),
                'name': names.get(row['causer_id'], ('Unknown', ''))[0],
                'email': names.get(row['causer_id'], ('Unknown', ''))[1],
                'count': row['count'],
            }
            for row in top_causers
        ]

        active_users = (
            base.recent(days=30).filter(causer_id__isnull=False)
            .order_by().values('causer_id').distinct().count()
        )

        return {
            'start_date': start_date.isoformat(),
            'end_date': end_date.isoformat(),
            'total_events': window.count(),
            'today_events': base.filter(created_at__date=today).count(),
            'active_users': active_users,
            'top_module': max(by_module, key=by_module.get) if by_module else None,
            'by_module': by_module,
            'by_submodule': by_submodule,
            'top_causers': top_causers,
            'daily_counts': dense_daily_series(daily, start_date, end_date),
        }

    @classmethod
    def cleanup(cls, min_age_days, causer_id=None, request=None) -> int:
        """
        Delete audit events older than min_age_days.

        The retention floor is checked before anything else; a rejected call
        deletes nothing. A system/log_archived event records the outcome.

        Raises:
            InvalidRetention: if min_age_days is below the retention floor
        """
        validate_retention(min_age_days, causer_id)

        cutoff = timezone.now() - timedelta(days=min_age_days)
        with transaction.atomic():
            deleted, _ = AuditEvent.objects.older_than(cutoff).delete()

        logger.info(
            f"Audit cleanup removed {deleted} events older than {min_age_days} days",
            extra={'deleted_count': deleted, 'retention_days': min_age_days}
        )

        cls.record(
            'system', 'archived',
            f"Archived {deleted} audit events older than {min_age_days} days",
            submodule='log_archived',
            causer_id=causer_id,
            properties={
                'deleted_count': deleted,
                'retention_days': min_age_days,
                'cutoff': cutoff,
            },
            request=request,
        )
        return deleted

    @classmethod
    def export(cls, filters: Optional[dict] = None, fmt: str = 'csv', limit: Optional[int] = None):
        """
        Stream the filtered trail as CSV lines or JSON fragments.

        Rows are read in chunks of AUDIT_EXPORT_CHUNK_SIZE and capped at
        AUDIT_EXPORT_MAX_ROWS (or a lower caller-supplied limit). Only events
        that existed when export() was called are streamed.

        Raises:
            ValidationFailed: for an unknown format
        """
        from apps.audit.services.exports import stream_audit_csv, stream_audit_json

        if fmt not in ('csv', 'json'):
            raise ValidationFailed(
                f"Unsupported export format '{fmt}'",
                details={'format': ['Must be one of: csv, json.']},
            )

        cap = settings.AUDIT_EXPORT_MAX_ROWS
        if limit is not None:
            cap = max(0, min(int(limit), cap))

        queryset = cls.filter_events(filters).filter(created_at__lte=timezone.now())
        if fmt == 'csv':
            return stream_audit_csv(queryset, cap)
        return stream_audit_json(queryset, cap)

    @staticmethod
    def causer_names(causer_ids):
        """Map causer id -> (name, email), including soft-deleted users."""
        from apps.rbac.models import User

        if not causer_ids:
            return {}
        return {
            user.id: (user.name, user.email)
            for user in User.objects_with_deleted.filter(id__in=set(causer_ids))
        }
