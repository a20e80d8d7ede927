"""
Audit models.

Implements:
- AuditEvent: append-only record of a privileged action
- LoginAudit: one row per login attempt, stamped with logout facts later
- ActiveSession: live console session with an active/expired/terminated lifecycle
"""
import logging
from datetime import timedelta
from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone
from apps.core.models import TimestampedModel

logger = logging.getLogger(__name__)


LOGIN_METHOD_CHOICES = [
    ('sso', 'SSO'),
    ('direct', 'Direct'),
    ('api', 'API'),
]


class ImmutableRecordError(Exception):
    """Raised when code tries to modify an append-only audit row."""


class AuditEventQuerySet(models.QuerySet):
    """QuerySet for audit event filtering."""

    def for_module(self, module, submodule=None):
        qs = self.filter(module=module)
        if submodule:
            qs = qs.filter(submodule=submodule)
        return qs

    def caused_by(self, user_id):
        return self.filter(causer_id=user_id)

    def for_subject(self, subject_type, subject_id=None):
        qs = self.filter(subject_type=subject_type)
        if subject_id is not None:
            qs = qs.filter(subject_id=str(subject_id))
        return qs

    def involving_user(self, user_id):
        """Events the user caused or that target the user."""
        return self.filter(
            Q(causer_id=user_id) | Q(subject_type='User', subject_id=str(user_id))
        )

    def recent(self, days=30):
        """Events from the last N days."""
        return self.filter(created_at__gte=timezone.now() - timedelta(days=days))

    def older_than(self, cutoff):
        return self.filter(created_at__lt=cutoff)


class AuditEvent(TimestampedModel):
    """
    Append-only record of a privileged action.

    Causer and tenant are stored as plain ids so history outlives the rows
    it refers to. A missing causer means the action was performed by the
    system. Rows are never updated; retention cleanup removes them in bulk.
    """

    module = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Functional area (e.g., 'roles_permissions', 'authentication')"
    )
    submodule = models.CharField(
        max_length=50,
        blank=True,
        db_index=True,
        help_text="Finer grouping within the module (e.g., 'role_assigned')"
    )
    action = models.CharField(
        max_length=50,
        help_text="Verb describing the action (e.g., 'assigned', 'updated')"
    )
    description = models.CharField(
        max_length=500,
        help_text="Human-readable description of the action"
    )

    causer_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="User who performed the action (null for system actions)"
    )
    subject_type = models.CharField(
        max_length=50,
        blank=True,
        help_text="Type of the entity acted on (e.g., 'User', 'Role')"
    )
    subject_id = models.CharField(
        max_length=64,
        blank=True,
        help_text="Identifier of the entity acted on"
    )
    tenant_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Tenant the action was scoped to (null for global)"
    )

    properties = models.JSONField(
        default=dict,
        blank=True,
        help_text="Structured context with string keys and JSON values"
    )

    # Request Context
    ip_address = models.GenericIPAddressField(
        null=True,
        blank=True,
        help_text="IP address of the request"
    )
    user_agent = models.TextField(
        blank=True,
        help_text="User agent string"
    )
    request_id = models.CharField(
        max_length=64,
        blank=True,
        help_text="Request ID for tracing"
    )

    objects = AuditEventQuerySet.as_manager()

    class Meta:
        db_table = 'audit_events'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['module', 'created_at'], name='audit_module_created_idx'),
            models.Index(fields=['module', 'submodule', 'created_at'], name='audit_module_sub_created_idx'),
            models.Index(fields=['causer_id', 'created_at'], name='audit_causer_created_idx'),
            models.Index(fields=['subject_type', 'subject_id'], name='audit_subject_idx'),
            models.Index(fields=['tenant_id', 'created_at'], name='audit_tenant_created_idx'),
        ]

    def __str__(self):
        causer = self.causer_id or 'system'
        return f"{self.module}/{self.submodule or '-'} {self.action} by {causer}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError("Audit events are append-only")
        super().save(*args, **kwargs)


class LoginAuditQuerySet(models.QuerySet):
    """QuerySet for login audit queries."""

    def successful(self):
        return self.filter(is_successful=True)

    def failed(self):
        return self.filter(is_successful=False)

    def for_tenant(self, tenant_id):
        return self.filter(tenant_id=tenant_id)

    def between(self, start, end):
        return self.filter(login_at__gte=start, login_at__lte=end)

    def older_than(self, cutoff):
        return self.filter(login_at__lt=cutoff)


class LoginAudit(TimestampedModel):
    """
    One login attempt, successful or not.

    Rows are append-only except for the logout facts (logout_at and
    session_duration) stamped when the matching session ends.
    """

    user_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Resolved user (null when the email matched nobody)"
    )
    email = models.EmailField(
        blank=True,
        help_text="Email presented at login"
    )
    tenant_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Tenant the login targeted (null for the console itself)"
    )
    login_method = models.CharField(
        max_length=10,
        choices=LOGIN_METHOD_CHOICES,
        default='direct',
        db_index=True,
        help_text="How the user authenticated"
    )
    ip_address = models.GenericIPAddressField(
        null=True,
        blank=True,
        help_text="IP address of the attempt"
    )
    user_agent = models.TextField(
        blank=True,
        help_text="User agent string"
    )
    session_key = models.CharField(
        max_length=100,
        blank=True,
        db_index=True,
        help_text="Session opened by a successful attempt"
    )
    is_successful = models.BooleanField(
        db_index=True,
        help_text="Whether the attempt succeeded"
    )
    failure_reason = models.CharField(
        max_length=255,
        blank=True,
        help_text="Why the attempt failed"
    )
    login_at = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        help_text="When the attempt happened"
    )
    logout_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the session opened by this attempt ended"
    )
    session_duration = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Session length in seconds"
    )

    objects = LoginAuditQuerySet.as_manager()

    class Meta:
        db_table = 'login_audits'
        ordering = ['-login_at']
        indexes = [
            models.Index(fields=['is_successful', 'login_at'], name='login_success_at_idx'),
            models.Index(fields=['user_id', 'login_at'], name='login_user_at_idx'),
            models.Index(fields=['tenant_id', 'login_at'], name='login_tenant_at_idx'),
        ]

    def __str__(self):
        outcome = 'success' if self.is_successful else 'failure'
        return f"{self.email or self.user_id} {self.login_method} {outcome} at {self.login_at:%Y-%m-%d %H:%M:%S}"

    @property
    def session_duration_minutes(self):
        if self.session_duration is None:
            return None
        return round(self.session_duration / 60, 2)


class ActiveSessionQuerySet(models.QuerySet):
    """QuerySet for session lifecycle queries."""

    def open(self):
        """Sessions still in the active state (may be past expiry)."""
        return self.filter(status=ActiveSession.STATUS_ACTIVE)

    def online(self, now=None):
        """Active, unexpired sessions seen within the online window."""
        now = now or timezone.now()
        window = timedelta(minutes=settings.SESSION_ONLINE_WINDOW_MINUTES)
        return self.open().filter(expires_at__gt=now, last_activity__gt=now - window)

    def stale(self, now=None):
        """Active sessions past expiry or idle beyond the idle limit."""
        now = now or timezone.now()
        idle_cutoff = now - timedelta(hours=settings.SESSION_MAX_IDLE_HOURS)
        return self.open().filter(Q(expires_at__lte=now) | Q(last_activity__lt=idle_cutoff))

    def ended(self):
        return self.exclude(status=ActiveSession.STATUS_ACTIVE)

    def for_tenant(self, tenant_id):
        return self.filter(tenant_id=tenant_id)


class ActiveSession(TimestampedModel):
    """
    Live console session.

    Lifecycle: active -> expired (time-based) or active -> terminated (logout).
    Ended sessions never become active again.
    """

    STATUS_ACTIVE = 'active'
    STATUS_EXPIRED = 'expired'
    STATUS_TERMINATED = 'terminated'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_EXPIRED, 'Expired'),
        (STATUS_TERMINATED, 'Terminated'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='active_sessions',
        help_text="Session owner"
    )
    tenant = models.ForeignKey(
        'tenants.Tenant',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='active_sessions',
        help_text="Tenant the session is currently working in"
    )
    session_key = models.CharField(
        max_length=100,
        unique=True,
        help_text="Opaque session identifier"
    )
    login_method = models.CharField(
        max_length=10,
        choices=LOGIN_METHOD_CHOICES,
        default='direct',
        help_text="How the session was opened"
    )
    login_audit_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="Login audit row that opened the session"
    )
    ip_address = models.GenericIPAddressField(
        null=True,
        blank=True,
        help_text="IP address at login"
    )
    user_agent = models.TextField(
        blank=True,
        help_text="User agent at login"
    )
    started_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the session was opened"
    )
    last_activity = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        help_text="Last time the session was seen"
    )
    expires_at = models.DateTimeField(
        db_index=True,
        help_text="Session expiry; extended on activity"
    )
    status = models.CharField(
        max_length=12,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
        db_index=True,
        help_text="Lifecycle state"
    )
    ended_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the session expired or was terminated"
    )
    activity_data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Last request context (path, method)"
    )

    objects = ActiveSessionQuerySet.as_manager()

    class Meta:
        db_table = 'active_sessions'
        ordering = ['-last_activity']
        indexes = [
            models.Index(fields=['status', 'expires_at'], name='session_status_expires_idx'),
            models.Index(fields=['user', 'status'], name='session_user_status_idx'),
            models.Index(fields=['tenant', 'status'], name='session_tenant_status_idx'),
        ]

    def __str__(self):
        return f"{self.user_id} {self.login_method} {self.status}"

    @property
    def is_active(self):
        """Active, unexpired and seen within the online window."""
        now = timezone.now()
        window = timedelta(minutes=settings.SESSION_ONLINE_WINDOW_MINUTES)
        return (
            self.status == self.STATUS_ACTIVE
            and self.expires_at > now
            and self.last_activity > now - window
        )

    @property
    def duration_seconds(self):
        end = self.ended_at or timezone.now()
        return max(int((end - self.started_at).total_seconds()), 0)
