"""
Celery tasks for audit retention and session housekeeping.
"""
import logging
from django.conf import settings
from celery import shared_task

from apps.audit.services import AuditRecorder, LoginAuditTracker, ActiveSessionRegistry

logger = logging.getLogger(__name__)


@shared_task(name='audit.cleanup_retention')
def cleanup_retention(audit_days=None, login_days=None):
    """
    Apply the configured retention windows.

    Args:
        audit_days: Override AUDIT_RETENTION_DAYS
        login_days: Override LOGIN_AUDIT_RETENTION_DAYS

    Returns:
        dict: Counts of deleted audit events, login audits and sessions
    """
    audit_days = audit_days or settings.AUDIT_RETENTION_DAYS
    login_days = login_days or settings.LOGIN_AUDIT_RETENTION_DAYS

    events_deleted = AuditRecorder.cleanup(audit_days)
    login_result = LoginAuditTracker.cleanup(login_days)

    result = {
        'audit_events_deleted': events_deleted,
        **login_result,
    }
    logger.info("Retention cleanup finished", extra=result)
    return result


@shared_task(name='audit.expire_sessions')
def expire_sessions():
    """
    Move active sessions past expiry or idle too long to expired.

    Returns:
        dict: Number of sessions expired
    """
    expired = ActiveSessionRegistry.expire_stale()
    if expired:
        AuditRecorder.record(
            'system', 'expired', f"Expired {expired} stale sessions",
            submodule='sessions_expired',
            properties={'expired_count': expired},
        )
    return {'expired_count': expired}
