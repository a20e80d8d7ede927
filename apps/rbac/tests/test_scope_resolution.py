"""
Tests for RBACService scope resolution and caching.
"""
import pytest

from apps.rbac.catalog import CONSOLE_SCOPES
from apps.rbac.services import RBACService, RoleAssignmentEngine


@pytest.mark.django_db
class TestScopeResolution:
    """Test how global and tenant assignments combine."""

    def test_no_assignments_no_scopes(self, console_catalog, user, tenant):
        assert RBACService.resolve_scopes(user) == set()
        assert RBACService.resolve_scopes(user, tenant) == set()

    def test_global_assignment_applies_everywhere(self, console_catalog, user, tenant):
        RoleAssignmentEngine.assign(user.id, 'auditor')

        expected = {'roles:view', 'audit:view', 'audit:export', 'analytics:view'}
        assert RBACService.resolve_scopes(user) == expected
        assert RBACService.resolve_scopes(user, tenant) == expected

    def test_tenant_assignment_only_in_its_tenant(self, console_catalog, user, tenant, other_tenant):
        RoleAssignmentEngine.assign(user.id, 'tenant-admin', tenant_id=tenant.id)

        assert 'roles:manage' in RBACService.resolve_scopes(user, tenant)
        assert RBACService.resolve_scopes(user, other_tenant) == set()
        assert RBACService.resolve_scopes(user) == set()

    def test_scopes_union_across_roles(self, custom_role, user, tenant):
        RoleAssignmentEngine.assign(user.id, custom_role.slug)
        RoleAssignmentEngine.assign(user.id, 'auditor', tenant_id=tenant.id)

        scopes = RBACService.resolve_scopes(user, tenant)

        assert scopes == {'roles:view', 'audit:view', 'audit:export', 'analytics:view'}

    def test_deactivated_tenant_assignments_grant_nothing(self, console_catalog, user, tenant):
        """Assignments in a suspended tenant stay stored but are not authoritative."""
        RoleAssignmentEngine.assign(user.id, 'tenant-admin', tenant_id=tenant.id)
        RoleAssignmentEngine.assign(user.id, 'auditor')

        tenant.status = 'suspended'
        tenant.save()
        RBACService.invalidate_all()

        scopes = RBACService.resolve_scopes(user, tenant)
        assert 'roles:manage' not in scopes
        assert 'audit:export' in scopes

    def test_admin_holds_every_scope(self, console_catalog, admin_user):
        assert RBACService.resolve_scopes(admin_user) >= set(CONSOLE_SCOPES)

    def test_anonymous_has_no_scopes(self):
        from django.contrib.auth.models import AnonymousUser

        assert RBACService.resolve_scopes(AnonymousUser()) == set()
        assert RBACService.resolve_scopes(None) == set()

    def test_has_scope(self, console_catalog, user):
        RoleAssignmentEngine.assign(user.id, 'auditor')

        assert RBACService.has_scope(user, 'audit:view')
        assert not RBACService.has_scope(user, 'roles:manage')


@pytest.mark.django_db
class TestScopeCaching:
    """Test versioned cache invalidation."""

    def test_resolution_is_cached(self, console_catalog, user, django_assert_num_queries):
        RoleAssignmentEngine.assign(user.id, 'auditor')
        RBACService.resolve_scopes(user)

        with django_assert_num_queries(0):
            RBACService.resolve_scopes(user)

    def test_invalidate_user_drops_only_that_user(self, console_catalog, user, admin_user):
        RBACService.resolve_scopes(user)
        RBACService.resolve_scopes(admin_user)
        before = RBACService._cache_key(admin_user, None)

        RBACService.invalidate_user(user.id)

        assert RBACService._cache_key(admin_user, None) == before

    def test_invalidate_all_changes_every_key(self, console_catalog, user, admin_user):
        user_key = RBACService._cache_key(user, None)
        admin_key = RBACService._cache_key(admin_user, None)

        RBACService.invalidate_all()

        assert RBACService._cache_key(user, None) != user_key
        assert RBACService._cache_key(admin_user, None) != admin_key
