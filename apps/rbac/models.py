"""
RBAC models for the multi-tenant admin console.

Implements:
- User (global identity, AUTH_USER_MODEL)
- Permission (global capability catalog)
- Role (global named permission sets; system roles are immutable)
- RolePermission (maps permissions to roles)
- RoleAssignment (user holds role, globally or within one tenant)
"""
import logging
from django.contrib.auth.hashers import make_password, check_password
from django.db import models, transaction
from django.db.models import Q
from django.utils import timezone
from apps.core.models import BaseModel, TimestampedModel

logger = logging.getLogger(__name__)


class UserManager(models.Manager):
    """
    Manager for User queries.

    Compatible with Django's authentication system.
    """

    def get_queryset(self):
        return super().get_queryset().filter(deleted_at__isnull=True)

    def by_email(self, email):
        """Find user by email."""
        return self.filter(email=self.normalize_email(email)).first()

    def create_user(self, email, password=None, **extra_fields):
        """Create a new user with hashed password."""
        if not email:
            raise ValueError('Email address is required')

        email = self.normalize_email(email)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('is_superuser', False)

        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """Create a console administrator holding every scope."""
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_admin', True)

        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True')

        return self.create_user(email, password, **extra_fields)

    @staticmethod
    def normalize_email(email):
        """Lowercase the whole address; console logins are case-insensitive."""
        return (email or '').strip().lower()

    def get_by_natural_key(self, email):
        return self.get(**{self.model.USERNAME_FIELD: email})


class User(BaseModel):
    """
    Global user identity.

    A user may hold roles globally and in any number of tenants.
    Authentication happens at the User level, authorization through
    RoleAssignment.
    """

    email = models.EmailField(
        unique=True,
        help_text="User email address (unique globally)"
    )
    password_hash = models.CharField(
        max_length=255,
        blank=True,
        help_text="Hashed password",
        db_column='password_hash'
    )
    first_name = models.CharField(
        max_length=100,
        blank=True,
        help_text="User first name"
    )
    last_name = models.CharField(
        max_length=100,
        blank=True,
        help_text="User last name"
    )

    # Status
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether user account is active"
    )
    is_admin = models.BooleanField(
        default=False,
        help_text="Console administrator; holds every scope regardless of roles"
    )
    is_superuser = models.BooleanField(
        default=False,
        help_text="Platform superuser (use sparingly in production)"
    )

    last_login_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last successful login timestamp"
    )

    USERNAME_FIELD = 'email'
    EMAIL_FIELD = 'email'
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        db_table = 'users'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['is_active', 'created_at'], name='users_active_created_idx'),
        ]

    def __str__(self):
        return self.email

    @property
    def password(self):
        """Alias for password_hash for Django auth compatibility."""
        return self.password_hash

    @password.setter
    def password(self, value):
        self.password_hash = value

    @property
    def name(self):
        return self.get_full_name()

    def delete(self, using=None, keep_parents=False):
        """
        Soft delete the user and drop their role bindings.

        History keeps referring to the user by id; bindings do not outlive
        the identity that holds them.
        """
        from apps.rbac.services import RBACService

        with transaction.atomic(using=using):
            super().delete(using=using, keep_parents=keep_parents)
            removed, _ = self.role_assignments.all().delete()

        RBACService.invalidate_user(self.id)
        logger.info(
            f"User soft deleted: {self.email}",
            extra={'user_id': str(self.id), 'assignments_removed': removed}
        )

    def check_password(self, raw_password):
        """Check if provided password matches stored hash."""
        return check_password(raw_password, self.password_hash)

    def set_password(self, raw_password):
        """Set user password (hashes automatically)."""
        self.password_hash = make_password(raw_password)

    def get_full_name(self):
        """Return full name or email if name not set."""
        if self.first_name or self.last_name:
            return f"{self.first_name} {self.last_name}".strip()
        return self.email

    def update_last_login(self):
        """Update last_login_at to current time."""
        self.last_login_at = timezone.now()
        self.save(update_fields=['last_login_at'])

    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False

    @property
    def is_staff(self):
        return self.is_superuser

    def natural_key(self):
        return (self.email,)


class PermissionManager(models.Manager):
    """Manager for Permission queries."""

    def by_category(self, category):
        """Get all permissions in a category."""
        return self.filter(category=category)

    def get_or_create_permission(self, slug, name, description='', category=''):
        """Get or create permission (idempotent)."""
        return self.get_or_create(
            slug=slug,
            defaults={
                'name': name,
                'description': description,
                'category': category,
            }
        )


class Permission(TimestampedModel):
    """
    Global capability definition.

    The permission slug is also the scope string checked by API endpoints
    (e.g. 'roles:manage').
    """

    slug = models.CharField(
        max_length=100,
        unique=True,
        help_text="Unique permission slug (e.g., 'audit:view')"
    )
    name = models.CharField(
        max_length=255,
        help_text="Human-readable name (e.g., 'View Audit Trail')"
    )
    description = models.TextField(
        blank=True,
        help_text="What this permission grants"
    )
    category = models.CharField(
        max_length=50,
        blank=True,
        db_index=True,
        help_text="Permission category (e.g., 'roles', 'audit')"
    )

    objects = PermissionManager()

    class Meta:
        db_table = 'permissions'
        ordering = ['category', 'slug']

    def __str__(self):
        return self.slug


class RoleManager(models.Manager):
    """Manager for Role queries."""

    def system_roles(self):
        """Get system-seeded roles."""
        return self.filter(is_system=True)


class Role(TimestampedModel):
    """
    Named permission set.

    Roles are global; the tenant scope lives on the assignment. System roles
    are seeded by the platform and cannot be modified or deleted.
    """

    name = models.CharField(
        max_length=100,
        unique=True,
        help_text="Role name (e.g., 'Tenant Admin')"
    )
    slug = models.SlugField(
        max_length=100,
        unique=True,
        help_text="Role slug used by the API (e.g., 'tenant-admin')"
    )
    description = models.TextField(
        blank=True,
        help_text="Role description"
    )
    is_system = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether this is a system-seeded, immutable role"
    )

    objects = RoleManager()

    class Meta:
        db_table = 'roles'
        ordering = ['name']

    def __str__(self):
        return self.name

    def get_permissions(self):
        """Get all permissions granted by this role."""
        return Permission.objects.filter(role_permissions__role=self).distinct()

    def permission_slugs(self):
        """Set of permission slugs granted by this role."""
        return set(self.role_permissions.values_list('permission__slug', flat=True))


class RolePermissionManager(models.Manager):
    """Manager for RolePermission queries."""

    def grant_permission(self, role, permission):
        """Grant permission to role (idempotent)."""
        return self.get_or_create(role=role, permission=permission)


class RolePermission(TimestampedModel):
    """Maps permissions to roles."""

    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='role_permissions',
        help_text="Role that grants this permission"
    )
    permission = models.ForeignKey(
        Permission,
        on_delete=models.CASCADE,
        related_name='role_permissions',
        help_text="Permission being granted"
    )

    objects = RolePermissionManager()

    class Meta:
        db_table = 'role_permissions'
        unique_together = [('role', 'permission')]
        ordering = ['role', 'permission']

    def __str__(self):
        return f"{self.role.slug} -> {self.permission.slug}"


class RoleAssignmentManager(models.Manager):
    """Manager for RoleAssignment queries."""

    def for_user(self, user):
        """All assignments held by a user."""
        return self.filter(user=user)

    def for_tenant(self, tenant):
        """All assignments scoped to a tenant."""
        return self.filter(tenant=tenant)

    def lookup(self, user, role, tenant=None):
        """Filter by the (user, role, tenant) triple; tenant None means global."""
        if tenant is None:
            return self.filter(user=user, role=role, tenant__isnull=True)
        return self.filter(user=user, role=role, tenant=tenant)


class RoleAssignment(TimestampedModel):
    """
    A user holds a role, either globally (tenant is null) or in one tenant.

    The (user, role, tenant) triple is unique. Two partial unique constraints
    cover it because NULL never equals NULL in a plain unique index.
    """

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='role_assignments',
        help_text="User who holds the role"
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='assignments',
        help_text="Role held"
    )
    tenant = models.ForeignKey(
        'tenants.Tenant',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='role_assignments',
        help_text="Tenant scope (null for a global assignment)"
    )
    assigned_by_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who made the assignment (null for system)"
    )

    objects = RoleAssignmentManager()

    class Meta:
        db_table = 'role_assignments'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'role', 'tenant'],
                condition=Q(tenant__isnull=False),
                name='uniq_role_assignment_tenant',
            ),
            models.UniqueConstraint(
                fields=['user', 'role'],
                condition=Q(tenant__isnull=True),
                name='uniq_role_assignment_global',
            ),
        ]
        indexes = [
            models.Index(fields=['user', 'tenant'], name='role_assign_user_tenant_idx'),
            models.Index(fields=['tenant'], name='role_assign_tenant_idx'),
        ]

    def __str__(self):
        scope = self.tenant.slug if self.tenant_id else 'global'
        return f"{self.user.email} -> {self.role.slug} @ {scope}"

    @property
    def scope(self):
        return 'tenant' if self.tenant_id else 'global'
