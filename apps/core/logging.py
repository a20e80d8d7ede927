"""
Structured JSON logging and security event logging.
"""
import json
import logging
import re
import traceback
from datetime import datetime, timezone as dt_timezone
from django.utils import timezone
import sentry_sdk


class PIIMasker:
    """
    Utility class to mask sensitive PII data in logs.
    """

    EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b')
    API_KEY_PATTERN = re.compile(r'(api[_-]?key|token|secret|password|auth)["\']?\s*[:=]\s*["\']?([^"\'\s,}]+)', re.IGNORECASE)
    BEARER_PATTERN = re.compile(r'(Bearer\s+)[A-Za-z0-9._-]+')

    # Field names whose values are always masked
    SENSITIVE_FIELDS = {
        'password', 'password_hash', 'passwd',
        'api_key', 'api_token', 'access_token', 'refresh_token', 'bearer_token',
        'authorization', 'secret', 'secret_key', 'jwt', 'token',
    }

    # Field names whose values are email addresses
    EMAIL_FIELDS = {'email', 'user_email', 'email_address'}

    @classmethod
    def mask_email(cls, text):
        """Mask email addresses in text."""
        if not isinstance(text, str):
            return text

        def mask_email_match(match):
            username, _, domain = match.group(0).partition('@')
            masked_username = username[0] + '*' * (len(username) - 1) if len(username) > 1 else username
            return f"{masked_username}@{domain}"
        return cls.EMAIL_PATTERN.sub(mask_email_match, text)

    @classmethod
    def mask_api_keys(cls, text):
        """Mask API keys, tokens, and secrets in text."""
        if not isinstance(text, str):
            return text
        text = cls.BEARER_PATTERN.sub(r'\1********', text)
        return cls.API_KEY_PATTERN.sub(r'\1: ********', text)

    @classmethod
    def mask_text(cls, text):
        """Apply all masking patterns to text."""
        if not isinstance(text, str):
            return text
        return cls.mask_api_keys(cls.mask_email(text))

    @classmethod
    def mask_dict(cls, data):
        """Recursively mask sensitive data in dictionaries."""
        if not isinstance(data, dict):
            return data

        masked = {}
        for key, value in data.items():
            lowered = str(key).lower()
            if lowered in cls.SENSITIVE_FIELDS or lowered.endswith(('_password', '_secret', '_token')):
                masked[key] = '********' if value else value
            elif lowered in cls.EMAIL_FIELDS and isinstance(value, str):
                masked[key] = cls.mask_email(value)
            elif isinstance(value, dict):
                masked[key] = cls.mask_dict(value)
            elif isinstance(value, list):
                masked[key] = [
                    cls.mask_dict(item) if isinstance(item, dict) else cls.mask_text(item)
                    for item in value
                ]
            elif isinstance(value, str):
                masked[key] = cls.mask_text(value)
            else:
                masked[key] = value

        return masked


class JSONFormatter(logging.Formatter):
    """
    Format log records as JSON for structured logging.
    Includes request_id and tenant_id from extra fields if available.
    Automatically masks sensitive PII data.
    """

    RESERVED_ATTRS = {
        'name', 'msg', 'args', 'created', 'filename', 'funcName',
        'levelname', 'levelno', 'lineno', 'module', 'msecs', 'message',
        'pathname', 'process', 'processName', 'relativeCreated',
        'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
        'taskName', 'request_id', 'tenant_id', 'task_id', 'task_name',
    }

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(dt_timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': PIIMasker.mask_text(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if hasattr(record, 'request_id'):
            log_data['request_id'] = record.request_id

        if hasattr(record, 'tenant_id') and record.tenant_id is not None:
            log_data['tenant_id'] = str(record.tenant_id)

        # Celery task context
        if hasattr(record, 'task_id'):
            log_data['task_id'] = record.task_id
        if hasattr(record, 'task_name'):
            log_data['task_name'] = record.task_name

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': PIIMasker.mask_text(str(record.exc_info[1])),
                'traceback': [PIIMasker.mask_text(line) for line in traceback.format_exception(*record.exc_info)],
            }

        # Extra fields passed through logger.x(..., extra={...})
        for key, value in record.__dict__.items():
            if key in self.RESERVED_ATTRS or key.startswith('_'):
                continue
            if isinstance(value, dict):
                masked_value = PIIMasker.mask_dict(value)
            elif isinstance(value, str):
                masked_value = PIIMasker.mask_text(value)
            else:
                masked_value = value
            try:
                json.dumps(masked_value)
                log_data[key] = masked_value
            except (TypeError, ValueError):
                log_data[key] = PIIMasker.mask_text(str(value))

        return json.dumps(log_data)


class SecurityLogger:
    """
    Centralized security event logging.

    Events go to the 'security' logger with structured context. Critical
    events are also sent to Sentry for alerting.
    """

    CRITICAL_EVENTS = {
        'suspicious_activity',
        'retention_floor_violation',
    }

    @staticmethod
    def log_event(event_type: str, level: str = 'warning', **context):
        """
        Log a security event with structured data.

        Args:
            event_type: Type of security event (e.g., 'failed_login')
            level: Log level ('info', 'warning', 'error', 'critical')
            **context: Additional context data (ip_address, user_email, tenant_id, etc.)
        """
        logger = logging.getLogger('security')

        log_data = {
            'event_type': event_type,
            'event_timestamp': timezone.now().isoformat(),
        }
        log_data.update(context)
        log_data = PIIMasker.mask_dict(log_data)

        log_method = getattr(logger, level, logger.warning)
        log_method(
            f"Security event: {event_type}",
            extra=log_data
        )

        if event_type in SecurityLogger.CRITICAL_EVENTS:
            sentry_sdk.capture_message(
                f"Critical security event: {event_type}",
                level='error',
            )

    @staticmethod
    def log_failed_login(email: str, ip_address: str, user_agent: str = None, reason: str = None,
                         tenant_id: str = None):
        """
        Log a failed login attempt.

        Args:
            email: Email address used in login attempt
            ip_address: IP address of the request
            user_agent: User agent string (optional)
            reason: Reason for failure (optional)
            tenant_id: Tenant the attempt targeted (optional)
        """
        SecurityLogger.log_event(
            'failed_login',
            level='warning',
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
            reason=reason,
            tenant_id=tenant_id,
        )

    @staticmethod
    def log_permission_denied(user, tenant, required_scopes: set, ip_address: str):
        """Log a permission denial."""
        SecurityLogger.log_event(
            'permission_denied',
            level='warning',
            user_email=getattr(user, 'email', None),
            user_id=str(user.id) if getattr(user, 'id', None) else None,
            tenant_id=str(tenant.id) if tenant else None,
            required_scopes=sorted(required_scopes),
            ip_address=ip_address
        )

    @staticmethod
    def log_rate_limit_exceeded(
        endpoint: str,
        ip_address: str,
        user_email: str = None,
        tenant_id: str = None,
        limit: str = None
    ):
        """Log a rate limit violation."""
        SecurityLogger.log_event(
            'rate_limit_exceeded',
            level='warning',
            endpoint=endpoint,
            ip_address=ip_address,
            user_email=user_email,
            tenant_id=tenant_id,
            limit=limit
        )

    @staticmethod
    def log_system_role_mutation(role_slug: str, operation: str, causer_id=None):
        """Log an attempt to modify or delete a system role."""
        SecurityLogger.log_event(
            'system_role_mutation_blocked',
            level='warning',
            role_slug=role_slug,
            operation=operation,
            causer_id=str(causer_id) if causer_id else None,
        )

    @staticmethod
    def log_retention_violation(requested_days, floor_days, causer_id=None):
        """Log a cleanup request below the retention floor."""
        SecurityLogger.log_event(
            'retention_floor_violation',
            level='error',
            requested_days=requested_days,
            floor_days=floor_days,
            causer_id=str(causer_id) if causer_id else None,
        )
