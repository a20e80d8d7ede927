"""
Tenant models for multi-tenant scoping.

A tenant is the organisational scope a role binding can be attached to.
Assignments in a tenant that is not active stay stored but grant nothing.
"""
import logging

from django.db import models, transaction
from apps.core.models import BaseModel

logger = logging.getLogger(__name__)


class TenantManager(models.Manager):
    """Manager for tenant queries; soft-deleted tenants are excluded."""

    def get_queryset(self):
        return super().get_queryset().filter(deleted_at__isnull=True)

    def by_slug(self, slug):
        """Find tenant by slug."""
        return self.filter(slug=slug).first()


class Tenant(BaseModel):
    """
    Tenant model representing an isolated organisation.

    Only the attributes the console core needs are kept here: identity,
    lifecycle status and the seat limit shown in tenant rollups.
    """

    STATUS_CHOICES = [
        ('active', 'Active'),
        ('trial', 'Trial'),
        ('suspended', 'Suspended'),
        ('canceled', 'Canceled'),
    ]
    ACTIVE_STATUSES = ('active', 'trial')

    name = models.CharField(
        max_length=255,
        help_text="Organisation name"
    )
    slug = models.SlugField(
        unique=True,
        max_length=100,
        help_text="URL-friendly identifier"
    )
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default='active',
        db_index=True,
        help_text="Current tenant status"
    )
    max_users = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Seat limit shown in rollups (null for unlimited)"
    )

    objects = TenantManager()

    class Meta:
        db_table = 'tenants'
        ordering = ['name']
        indexes = [
            models.Index(fields=['status'], name='tenants_status_idx'),
            models.Index(fields=['slug'], name='tenants_slug_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.slug})"

    def is_active(self):
        """Check if tenant assignments are currently authoritative."""
        return self.status in self.ACTIVE_STATUSES and not self.is_deleted

    def delete(self, using=None, keep_parents=False):
        """Soft delete the tenant and drop every role binding scoped to it."""
        from apps.rbac.services import RBACService

        with transaction.atomic(using=using):
            super().delete(using=using, keep_parents=keep_parents)
            removed, _ = self.role_assignments.all().delete()

        if removed:
            RBACService.invalidate_all()
        logger.info(
            f"Tenant soft deleted: {self.slug}",
            extra={'tenant_id': str(self.id), 'assignments_removed': removed}
        )
