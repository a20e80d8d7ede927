"""
Pytest configuration and fixtures.
"""
from io import StringIO

import pytest
from django.conf import settings
from django.core.cache import cache


def pytest_configure(config):
    """Configure Django settings for tests."""
    settings.DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': False,
    }


@pytest.fixture(autouse=True)
def clear_cache():
    """Scope caches and rate limit counters must not leak between tests."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    """Return DRF API client."""
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture
def tenant(db):
    """Create a test tenant."""
    from apps.tenants.models import Tenant
    return Tenant.objects.create(
        name='Test Tenant',
        slug='test-tenant',
        status='active',
        max_users=10
    )


@pytest.fixture
def other_tenant(db):
    """Create another test tenant for isolation tests."""
    from apps.tenants.models import Tenant
    return Tenant.objects.create(
        name='Other Tenant',
        slug='other-tenant',
        status='active'
    )


@pytest.fixture
def user(db):
    """Create a regular console user without roles."""
    from apps.rbac.models import User
    return User.objects.create_user(
        email='user@example.com',
        password='testpass123',
        first_name='Test',
        last_name='User'
    )


@pytest.fixture
def admin_user(db):
    """Create a console administrator (holds every scope)."""
    from apps.rbac.models import User
    return User.objects.create_user(
        email='admin@example.com',
        password='testpass123',
        first_name='Admin',
        last_name='User',
        is_admin=True
    )


@pytest.fixture
def console_catalog(db):
    """Seed console permissions and system roles."""
    from django.core.management import call_command
    call_command('seed_console_roles', verbosity=0, stdout=StringIO())


@pytest.fixture
def custom_role(console_catalog):
    """Create a custom (mutable) role with roles:view."""
    from apps.rbac.services import RoleStore
    return RoleStore.create_role(
        name='Reviewer',
        description='Reviews roles',
        permission_slugs=['roles:view'],
    )


@pytest.fixture
def authenticate():
    """
    Return a helper that puts a Bearer JWT for user on a client.

    Usage:
        authenticate(api_client, user, tenant=tenant)
    """
    from apps.rbac.services import AuthService

    def _authenticate(client, user, tenant=None, session_key=None):
        token = AuthService.generate_jwt(user, session_key=session_key)
        headers = {'HTTP_AUTHORIZATION': f'Bearer {token}'}
        if tenant is not None:
            headers['HTTP_X_TENANT_ID'] = str(tenant.id)
        client.credentials(**headers)
        return client

    return _authenticate


@pytest.fixture
def admin_client(api_client, admin_user, authenticate):
    """API client authenticated as a console administrator."""
    return authenticate(api_client, admin_user)
