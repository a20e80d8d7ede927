"""
Canonical console permissions and system roles.

Permission slugs double as the scopes API endpoints require.
"""

CONSOLE_PERMISSIONS = [
    # Roles
    {
        'slug': 'roles:view',
        'name': 'View Roles',
        'description': 'View roles, permissions and role assignments',
        'category': 'roles',
    },
    {
        'slug': 'roles:manage',
        'name': 'Manage Roles',
        'description': 'Create, update and delete roles; assign and remove roles',
        'category': 'roles',
    },

    # Audit
    {
        'slug': 'audit:view',
        'name': 'View Audit Trail',
        'description': 'Browse audit events and audit statistics',
        'category': 'audit',
    },
    {
        'slug': 'audit:export',
        'name': 'Export Audit Trail',
        'description': 'Download audit events and login audits as CSV or JSON',
        'category': 'audit',
    },
    {
        'slug': 'audit:manage',
        'name': 'Manage Audit Retention',
        'description': 'Delete audit records older than the retention floor',
        'category': 'audit',
    },

    # Analytics
    {
        'slug': 'analytics:view',
        'name': 'View Analytics',
        'description': 'View login analytics, sessions and tenant rollups',
        'category': 'analytics',
    },

    # Sessions
    {
        'slug': 'sessions:record',
        'name': 'Record Logins',
        'description': 'Report login attempts and logouts from tenant applications',
        'category': 'sessions',
    },
]

CONSOLE_SCOPES = frozenset(permission['slug'] for permission in CONSOLE_PERMISSIONS)

SYSTEM_ROLES = [
    {
        'name': 'Super Admin',
        'slug': 'super-admin',
        'description': 'Full access to the admin console',
        'permissions': sorted(CONSOLE_SCOPES),
    },
    {
        'name': 'Tenant Admin',
        'slug': 'tenant-admin',
        'description': 'Manages role assignments and reviews activity within a tenant',
        'permissions': ['roles:view', 'roles:manage', 'audit:view', 'analytics:view'],
    },
    {
        'name': 'Auditor',
        'slug': 'auditor',
        'description': 'Read-only access to the audit trail and analytics',
        'permissions': ['roles:view', 'audit:view', 'audit:export', 'analytics:view'],
    },
]
