"""
Audit services.
"""
from apps.audit.services.audit_recorder import AuditRecorder
from apps.audit.services.login_audit_tracker import LoginAuditTracker
from apps.audit.services.session_registry import ActiveSessionRegistry

__all__ = ['AuditRecorder', 'LoginAuditTracker', 'ActiveSessionRegistry']
