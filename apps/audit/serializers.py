"""
Audit serializers for REST API endpoints.

Provides serialization for:
- Audit events and their query parameters
- Login audits and login attempt reports
- Active sessions
- Retention cleanup requests
"""
from rest_framework import serializers

from apps.audit.models import AuditEvent, LoginAudit, LOGIN_METHOD_CHOICES
from apps.audit.modules import module_display_name


# ===== AUDIT EVENT SERIALIZERS =====

class AuditEventSerializer(serializers.ModelSerializer):
    """
    Serializer for AuditEvent.

    Causer names come from context['causers'] ({causer_id: (name, email)}) so
    a page of events resolves its users in one query.
    """

    module_display = serializers.SerializerMethodField()
    causer_name = serializers.SerializerMethodField()
    causer_email = serializers.SerializerMethodField()

    class Meta:
        model = AuditEvent
        fields = [
            'id', 'module', 'module_display', 'submodule', 'action', 'description',
            'causer_id', 'causer_name', 'causer_email',
            'subject_type', 'subject_id', 'tenant_id', 'properties',
            'ip_address', 'user_agent', 'request_id', 'created_at'
        ]
        read_only_fields = fields

    def get_module_display(self, obj):
        return module_display_name(obj.module)

    def _causer(self, obj):
        if obj.causer_id is None:
            return ('System', '')
        return self.context.get('causers', {}).get(obj.causer_id, ('Unknown', ''))

    def get_causer_name(self, obj):
        return self._causer(obj)[0]

    def get_causer_email(self, obj):
        return self._causer(obj)[1]


class DateWindowSerializer(serializers.Serializer):
    """Inclusive date window; both ends optional."""

    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)

    def validate(self, attrs):
        start_date = attrs.get('start_date')
        end_date = attrs.get('end_date')
        if start_date and end_date and start_date > end_date:
            raise serializers.ValidationError({'start_date': 'Must not be after end_date.'})
        return attrs


class AuditEventFilterSerializer(DateWindowSerializer):
    """Query parameters for GET /v1/audit-logs."""

    module = serializers.CharField(required=False, max_length=50)
    submodule = serializers.CharField(required=False, max_length=50)
    user_id = serializers.UUIDField(required=False)
    subject_type = serializers.CharField(required=False, max_length=50)
    subject_id = serializers.CharField(required=False, max_length=64)
    tenant_id = serializers.UUIDField(required=False)
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    per_page = serializers.IntegerField(
        required=False,
        min_value=1,
        default=100,
        help_text="Page size; values above 500 are clamped to 500"
    )

    FILTER_FIELDS = (
        'module', 'submodule', 'user_id', 'subject_type', 'subject_id',
        'tenant_id', 'start_date', 'end_date',
    )

    def filters(self):
        """Validated filter dict for AuditRecorder."""
        return {key: self.validated_data[key] for key in self.FILTER_FIELDS if key in self.validated_data}


class AuditExportQuerySerializer(AuditEventFilterSerializer):
    """Query parameters for GET /v1/audit-logs/export."""

    format = serializers.ChoiceField(choices=['csv', 'json'], required=False, default='csv')
    limit = serializers.IntegerField(required=False, min_value=1)


class RetentionCleanupSerializer(serializers.Serializer):
    """
    Body for retention cleanup endpoints.

    The retention floor is enforced by the service so a short window is
    reported as INVALID_RETENTION rather than a field error.
    """

    days = serializers.IntegerField(
        help_text="Delete records older than this many days (minimum 30)"
    )


# ===== LOGIN AUDIT SERIALIZERS =====

class LoginAuditSerializer(serializers.ModelSerializer):
    """Serializer for LoginAudit."""

    login_method_display = serializers.CharField(source='get_login_method_display', read_only=True)
    session_duration_minutes = serializers.FloatField(read_only=True)

    class Meta:
        model = LoginAudit
        fields = [
            'id', 'user_id', 'email', 'tenant_id', 'login_method', 'login_method_display',
            'ip_address', 'user_agent', 'is_successful', 'failure_reason',
            'login_at', 'logout_at', 'session_duration', 'session_duration_minutes'
        ]
        read_only_fields = fields


class LoginAttemptSerializer(serializers.Serializer):
    """Body for POST /v1/login-audits."""

    success = serializers.BooleanField()
    login_method = serializers.ChoiceField(choices=LOGIN_METHOD_CHOICES, default='direct')
    user_id = serializers.UUIDField(required=False, allow_null=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    tenant_id = serializers.UUIDField(required=False, allow_null=True)
    ip_address = serializers.IPAddressField(required=False, allow_null=True)
    user_agent = serializers.CharField(required=False, allow_blank=True, default='')
    failure_reason = serializers.CharField(required=False, allow_blank=True, max_length=255)
    session_key = serializers.CharField(required=False, allow_blank=True, max_length=100)

    def validate(self, attrs):
        if not attrs.get('user_id') and not attrs.get('email'):
            raise serializers.ValidationError({'user_id': 'Either user_id or email is required.'})
        return attrs


class LogoutRecordSerializer(serializers.Serializer):
    """Body for POST /v1/login-audits/logout."""

    session_key = serializers.CharField(max_length=100)


class LoginExportQuerySerializer(DateWindowSerializer):
    """Query parameters for GET /v1/login-audits/export."""

    tenant_id = serializers.UUIDField(required=False)
