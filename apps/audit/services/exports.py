"""
Streaming export of audit events and login audits.

Rows are read with QuerySet.iterator() in fixed-size chunks; the users and
tenants a chunk refers to are resolved with one query per chunk, so memory
stays bounded by the chunk size no matter how many rows are exported.
"""
import csv
import json
from itertools import islice

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.http import StreamingHttpResponse
from django.utils import timezone

AUDIT_CSV_HEADER = [
    'ID',
    'Description',
    'Module',
    'Submodule',
    'User',
    'User Email',
    'Subject Type',
    'Subject ID',
    'IP Address',
    'User Agent',
    'Date',
    'Properties',
]

LOGIN_CSV_HEADER = [
    'Date/Time',
    'User Name',
    'User Email',
    'Tenant',
    'Login Method',
    'IP Address',
    'Success',
    'Session Duration (minutes)',
    'Failure Reason',
]

DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class Echo:
    """File-like object whose write() hands the value back to csv.writer."""

    def write(self, value):
        return value


def chunked_rows(queryset, cap, chunk_size=None):
    """Yield lists of at most chunk_size rows, stopping after cap rows."""
    chunk_size = chunk_size or settings.AUDIT_EXPORT_CHUNK_SIZE
    if cap <= 0:
        return
    rows = queryset[:cap].iterator(chunk_size=chunk_size)
    while True:
        chunk = list(islice(rows, chunk_size))
        if not chunk:
            return
        yield chunk


def resolve_users(user_ids):
    """Map user id -> User for the given ids, soft-deleted users included."""
    from apps.rbac.models import User

    ids = {user_id for user_id in user_ids if user_id}
    if not ids:
        return {}
    return {user.id: user for user in User.objects_with_deleted.filter(id__in=ids)}


def resolve_tenants(tenant_ids):
    """Map tenant id -> Tenant for the given ids, soft-deleted tenants included."""
    from apps.tenants.models import Tenant

    ids = {tenant_id for tenant_id in tenant_ids if tenant_id}
    if not ids:
        return {}
    return {tenant.id: tenant for tenant in Tenant.objects_with_deleted.filter(id__in=ids)}


def causer_columns(event, users):
    """(name, email) for the causer: System when absent, Unknown when dangling."""
    if event.causer_id is None:
        return 'System', ''
    user = users.get(event.causer_id)
    if user is None:
        return 'Unknown', ''
    return user.name, user.email


def format_timestamp(value):
    if value is None:
        return ''
    return timezone.localtime(value).strftime(DATE_FORMAT)


def stream_audit_csv(queryset, cap, chunk_size=None):
    """Yield CSV lines for audit events, header first."""
    writer = csv.writer(Echo())
    yield writer.writerow(AUDIT_CSV_HEADER)

    for chunk in chunked_rows(queryset, cap, chunk_size):
        users = resolve_users(event.causer_id for event in chunk)
        for event in chunk:
            name, email = causer_columns(event, users)
            yield writer.writerow([
                str(event.id),
                event.description,
                event.module,
                event.submodule,
                name,
                email,
                event.subject_type,
                event.subject_id,
                event.ip_address or '',
                event.user_agent,
                format_timestamp(event.created_at),
                json.dumps(event.properties, cls=DjangoJSONEncoder),
            ])


def audit_event_document(event, users):
    """JSON-ready dict for one audit event."""
    causer = None
    if event.causer_id is not None:
        name, email = causer_columns(event, users)
        causer = {'id': str(event.causer_id), 'name': name, 'email': email}

    subject = None
    if event.subject_type:
        subject = {'type': event.subject_type, 'id': event.subject_id}

    return {
        'id': str(event.id),
        'description': event.description,
        'module': event.module,
        'submodule': event.submodule or None,
        'action': event.action,
        'causer': causer,
        'subject': subject,
        'tenant_id': str(event.tenant_id) if event.tenant_id else None,
        'properties': event.properties,
        'ip_address': event.ip_address,
        'user_agent': event.user_agent,
        'created_at': event.created_at.isoformat(),
    }


def stream_audit_json(queryset, cap, chunk_size=None):
    """Yield a JSON array of audit events, one element at a time."""
    yield '['
    first = True
    for chunk in chunked_rows(queryset, cap, chunk_size):
        users = resolve_users(event.causer_id for event in chunk)
        for event in chunk:
            prefix = '' if first else ','
            first = False
            yield prefix + json.dumps(audit_event_document(event, users), cls=DjangoJSONEncoder)
    yield ']'


def stream_login_csv(queryset, cap, chunk_size=None):
    """Yield CSV lines for login audits, header first."""
    writer = csv.writer(Echo())
    yield writer.writerow(LOGIN_CSV_HEADER)

    for chunk in chunked_rows(queryset, cap, chunk_size):
        users = resolve_users(record.user_id for record in chunk)
        tenants = resolve_tenants(record.tenant_id for record in chunk)
        for record in chunk:
            user = users.get(record.user_id)
            tenant = tenants.get(record.tenant_id)
            duration = record.session_duration_minutes
            yield writer.writerow([
                format_timestamp(record.login_at),
                user.name if user else 'Unknown',
                user.email if user else 'Unknown',
                tenant.name if tenant else 'N/A',
                record.get_login_method_display(),
                record.ip_address or '',
                'Yes' if record.is_successful else 'No',
                'N/A' if not duration else f'{duration:.2f}',
                record.failure_reason or 'N/A',
            ])


def streaming_attachment(chunks, filename, content_type):
    """Wrap a chunk generator in a StreamingHttpResponse download."""
    response = StreamingHttpResponse(chunks, content_type=content_type)
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    response['Cache-Control'] = 'no-store'
    return response


def audit_export_filename(fmt):
    return f"audit-logs-{timezone.now():%Y-%m-%d-%H-%M-%S}.{fmt}"


def login_export_filename(start, end):
    return f"login_analytics_{start:%Y-%m-%d}_to_{end:%Y-%m-%d}.csv"
