"""
Registry of audit modules and their submodules.

Modules group audit events by functional area. The registry drives the
module filter of the audit trail and the display names in exports.
"""

AUDIT_MODULES = {
    'authentication': {
        'name': 'Authentication',
        'description': 'User authentication and session management',
        'submodules': {
            'login': 'User login events',
            'logout': 'User logout events',
            'password_reset': 'Password reset requests and completions',
            'password_change': 'Password change events',
            'failed_login': 'Failed login attempts',
            'token_refresh': 'JWT token refresh events',
        },
    },
    'user_management': {
        'name': 'User Management',
        'description': 'User account and profile management',
        'submodules': {
            'user_created': 'New user account creation',
            'user_updated': 'User account updates',
            'user_deleted': 'User account deletion',
            'tenant_assigned': 'User tenant access assignments',
            'tenant_removed': 'User tenant access removal',
        },
    },
    'tenant_management': {
        'name': 'Tenant Management',
        'description': 'Multi-tenant organization management',
        'submodules': {
            'tenant_created': 'New tenant organization creation',
            'tenant_updated': 'Tenant information updates',
            'tenant_deleted': 'Tenant organization deletion',
            'tenant_activated': 'Tenant activation events',
            'tenant_deactivated': 'Tenant deactivation events',
            'user_assigned': 'User assignment to tenant',
            'user_removed': 'User removal from tenant',
        },
    },
    'settings': {
        'name': 'System Settings',
        'description': 'System configuration and settings management',
        'submodules': {
            'jwt_settings_updated': 'JWT token configuration changes',
            'session_settings_updated': 'Session management settings changes',
            'security_settings_updated': 'Security parameter changes',
            'system_settings_updated': 'General system configuration changes',
        },
    },
    'roles_permissions': {
        'name': 'Roles & Permissions',
        'description': 'Role-based access control management',
        'submodules': {
            'role_created': 'New role creation',
            'role_updated': 'Role information updates',
            'role_deleted': 'Role deletion',
            'role_assigned': 'Role assignment to users',
            'role_removed': 'Role removal from users',
            'permission_assigned': 'Permission assignment to roles',
            'permission_removed': 'Permission removal from roles',
        },
    },
    'security': {
        'name': 'Security Events',
        'description': 'Security monitoring and threat detection',
        'submodules': {
            'failed_login': 'Failed authentication attempts',
            'account_locked': 'Account lockout events',
            'suspicious_activity': 'Suspicious behavior detection',
            'rate_limit_exceeded': 'Rate limiting violations',
            'data_export': 'Audit trail and login audit exports',
        },
    },
    'system': {
        'name': 'System Administration',
        'description': 'System-level administrative activities',
        'submodules': {
            'cache_cleared': 'System cache clearing',
            'log_archived': 'Log archival and retention cleanup',
            'sessions_expired': 'Expired session purge',
            'system_health_check': 'System health monitoring',
        },
    },
}


def module_display_name(module):
    """Display name for a module; unknown modules are shown as stored."""
    return AUDIT_MODULES.get(module, {}).get('name', module)
