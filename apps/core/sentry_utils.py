"""
Sentry utilities for adding context and breadcrumbs.
"""
import sentry_sdk
from django.conf import settings


def set_tenant_context(tenant):
    """
    Set tenant context in Sentry for error tracking.

    Args:
        tenant: Tenant model instance
    """
    if not settings.SENTRY_DSN:
        return

    sentry_sdk.set_context("tenant", {
        "id": str(tenant.id),
        "name": tenant.name,
        "slug": tenant.slug,
        "status": tenant.status,
    })

    # Also set as tag for easier filtering
    sentry_sdk.set_tag("tenant_id", str(tenant.id))
    sentry_sdk.set_tag("tenant_slug", tenant.slug)


def set_user_context(user, scopes=None):
    """
    Set user context in Sentry for error tracking.

    Args:
        user: User model instance
        scopes: Optional resolved scopes for the current request
    """
    if not settings.SENTRY_DSN:
        return

    user_data = {
        "id": str(user.id),
        "is_active": user.is_active,
        "is_admin": getattr(user, 'is_admin', False),
    }
    if scopes is not None:
        user_data["scopes"] = sorted(scopes)

    sentry_sdk.set_user(user_data)


def capture_exception(exception, **kwargs):
    """
    Capture an exception in Sentry with optional context.

    Args:
        exception: The exception to capture
        **kwargs: Additional context to attach
    """
    if not settings.SENTRY_DSN:
        return

    with sentry_sdk.new_scope() as scope:
        for key, value in kwargs.items():
            scope.set_context(key, value)
        sentry_sdk.capture_exception(exception)
