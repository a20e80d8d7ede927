"""
Tests for TenantContextMiddleware request context resolution.
"""
import json
import uuid

import pytest
from django.contrib.auth.models import AnonymousUser

from apps.audit.services import ActiveSessionRegistry
from apps.rbac.services import AuthService, RoleAssignmentEngine
from apps.tenants.middleware import TenantContextMiddleware


@pytest.fixture
def middleware():
    return TenantContextMiddleware(lambda request: None)


def bearer(user, **claims):
    return {'HTTP_AUTHORIZATION': f'Bearer {AuthService.generate_jwt(user, **claims)}'}


def error_code(response):
    return json.loads(response.content)['error']['code']


@pytest.mark.django_db
class TestCallerResolution:

    def test_anonymous_request(self, rf, middleware):
        request = rf.get('/v1/roles')

        assert middleware.process_request(request) is None
        assert isinstance(request.user, AnonymousUser)
        assert request.scopes == set()
        assert request.tenant is None

    def test_valid_token(self, rf, middleware, console_catalog, user):
        RoleAssignmentEngine.assign(user.id, 'auditor')
        request = rf.get('/v1/roles', **bearer(user))

        assert middleware.process_request(request) is None
        assert request.user == user
        assert request.auth_payload['user_id'] == str(user.id)
        assert 'audit:export' in request.scopes

    def test_invalid_token(self, rf, middleware, db):
        request = rf.get('/v1/roles', HTTP_AUTHORIZATION='Bearer garbage')

        response = middleware.process_request(request)

        assert response.status_code == 401
        assert error_code(response) == 'INVALID_TOKEN'

    def test_inactive_user_token(self, rf, middleware, user):
        headers = bearer(user)
        user.is_active = False
        user.save()

        response = middleware.process_request(rf.get('/v1/roles', **headers))

        assert error_code(response) == 'INVALID_TOKEN'

    def test_ended_session(self, rf, middleware, user):
        session = ActiveSessionRegistry.open_session(user)
        ActiveSessionRegistry.terminate(session.session_key)
        request = rf.get('/v1/roles', **bearer(user, session_key=session.session_key))

        response = middleware.process_request(request)

        assert response.status_code == 401
        assert error_code(response) == 'SESSION_ENDED'

    def test_live_session_touched(self, rf, middleware, user):
        session = ActiveSessionRegistry.open_session(user)
        old_activity = session.last_activity
        request = rf.get('/v1/roles', **bearer(user, session_key=session.session_key))

        assert middleware.process_request(request) is None
        session.refresh_from_db()
        assert session.last_activity >= old_activity

    def test_public_path_skips_token(self, rf, middleware, db):
        request = rf.get('/v1/health', HTTP_AUTHORIZATION='Bearer garbage')

        assert middleware.process_request(request) is None


@pytest.mark.django_db
class TestTenantResolution:

    def test_tenant_header(self, rf, middleware, console_catalog, user, tenant):
        RoleAssignmentEngine.assign(user.id, 'tenant-admin', tenant_id=tenant.id)
        request = rf.get('/v1/roles', HTTP_X_TENANT_ID=str(tenant.id), **bearer(user))

        assert middleware.process_request(request) is None
        assert request.tenant == tenant
        assert 'roles:manage' in request.scopes

    def test_tenant_roles_ignored_without_header(self, rf, middleware, console_catalog, user, tenant):
        RoleAssignmentEngine.assign(user.id, 'tenant-admin', tenant_id=tenant.id)
        request = rf.get('/v1/roles', **bearer(user))

        middleware.process_request(request)

        assert request.scopes == set()

    def test_suspended_tenant_grants_nothing(self, rf, middleware, console_catalog, user, tenant):
        RoleAssignmentEngine.assign(user.id, 'tenant-admin', tenant_id=tenant.id)
        tenant.status = 'suspended'
        tenant.save()
        request = rf.get('/v1/roles', HTTP_X_TENANT_ID=str(tenant.id), **bearer(user))

        middleware.process_request(request)

        assert request.tenant == tenant
        assert request.scopes == set()

    def test_deleted_tenant_not_found(self, rf, middleware, user, tenant):
        tenant.delete()
        request = rf.get('/v1/roles', HTTP_X_TENANT_ID=str(tenant.id), **bearer(user))

        response = middleware.process_request(request)

        assert response.status_code == 404
        assert error_code(response) == 'NOT_FOUND'

    @pytest.mark.parametrize('tenant_id', [str(uuid.uuid4()), 'not-a-uuid'])
    def test_unknown_tenant(self, rf, middleware, user, tenant_id):
        request = rf.get('/v1/roles', HTTP_X_TENANT_ID=tenant_id, **bearer(user))

        response = middleware.process_request(request)

        assert response.status_code == 404
        assert error_code(response) == 'NOT_FOUND'
