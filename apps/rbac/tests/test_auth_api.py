"""
Tests for authentication endpoints: login, logout and the current user.
"""
import pytest
from rest_framework import status

from apps.audit.models import ActiveSession, AuditEvent, LoginAudit
from apps.rbac.services import AuthService, RoleAssignmentEngine


def login(client, email='user@example.com', password='testpass123', **extra):
    return client.post('/v1/auth/login', {'email': email, 'password': password, **extra}, format='json')


@pytest.mark.django_db
class TestLogin:
    """Test POST /v1/auth/login."""

    def test_login_success_opens_session(self, api_client, user):
        response = login(api_client)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['user']['email'] == 'user@example.com'
        assert response.data['session_key']

        payload = AuthService.validate_jwt(response.data['token'])
        assert payload['user_id'] == str(user.id)
        assert payload['sid'] == response.data['session_key']

        audit = LoginAudit.objects.get(user_id=user.id)
        assert audit.is_successful is True
        assert audit.login_method == 'direct'
        assert audit.ip_address == '127.0.0.1'

        session = ActiveSession.objects.get(session_key=response.data['session_key'])
        assert session.status == ActiveSession.STATUS_ACTIVE
        assert session.login_audit_id == audit.id

        assert AuditEvent.objects.filter(module='authentication', submodule='login').count() == 1

    def test_login_with_tenant(self, api_client, user, tenant):
        response = login(api_client, tenant_id=str(tenant.id))

        assert response.status_code == status.HTTP_200_OK
        assert AuthService.validate_jwt(response.data['token'])['tenant_id'] == str(tenant.id)
        assert LoginAudit.objects.get(user_id=user.id).tenant_id == tenant.id

    def test_login_email_is_case_insensitive(self, api_client, user):
        response = login(api_client, email='USER@Example.com')

        assert response.status_code == status.HTTP_200_OK

    def test_wrong_password_recorded(self, api_client, user):
        response = login(api_client, password='wrong-password')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data['error']['code'] == 'AUTHENTICATION_FAILED'

        audit = LoginAudit.objects.get()
        assert audit.is_successful is False
        assert audit.user_id == user.id
        assert audit.failure_reason == 'Invalid credentials'
        assert not ActiveSession.objects.exists()
        assert AuditEvent.objects.filter(submodule='failed_login').exists()

    def test_unknown_email_recorded(self, api_client, db):
        response = login(api_client, email='nobody@example.com')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        audit = LoginAudit.objects.get()
        assert audit.user_id is None
        assert audit.email == 'nobody@example.com'

    def test_inactive_user_cannot_login(self, api_client, user):
        user.is_active = False
        user.save()

        response = login(api_client)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_missing_password(self, api_client, db):
        response = api_client.post('/v1/auth/login', {'email': 'user@example.com'}, format='json')

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert 'password' in response.data['error']['details']

    def test_login_rate_limited(self, api_client, user):
        for _ in range(5):
            login(api_client, password='wrong-password')

        response = login(api_client)

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert response.data['error']['code'] == 'RATE_LIMIT_EXCEEDED'
        assert response['Retry-After']


@pytest.mark.django_db
class TestLogout:
    """Test POST /v1/auth/logout."""

    def test_logout_ends_session(self, api_client, user):
        token = login(api_client).data['token']
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = api_client.post('/v1/auth/logout')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['session_duration'] is not None

        audit = LoginAudit.objects.get(user_id=user.id)
        assert audit.logout_at is not None
        assert ActiveSession.objects.get().status == ActiveSession.STATUS_TERMINATED
        assert AuditEvent.objects.filter(submodule='logout').exists()

    def test_token_rejected_after_logout(self, api_client, user):
        token = login(api_client).data['token']
        api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        api_client.post('/v1/auth/logout')

        response = api_client.get('/v1/auth/me')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()['error']['code'] == 'SESSION_ENDED'

    def test_logout_requires_authentication(self, api_client, db):
        response = api_client.post('/v1/auth/logout')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.django_db
class TestMe:
    """Test GET /v1/auth/me."""

    def test_me_lists_scopes_and_assignments(self, api_client, console_catalog, user, tenant, authenticate):
        RoleAssignmentEngine.assign(user.id, 'auditor')
        RoleAssignmentEngine.assign(user.id, 'tenant-admin', tenant_id=tenant.id)
        authenticate(api_client, user, tenant=tenant)

        response = api_client.get('/v1/auth/me')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['user']['email'] == 'user@example.com'
        assert response.data['tenant_id'] == str(tenant.id)
        assert 'roles:manage' in response.data['scopes']
        assert 'audit:export' in response.data['scopes']
        assert len(response.data['assignments']) == 2

    def test_me_without_tenant_context(self, api_client, console_catalog, user, tenant, authenticate):
        RoleAssignmentEngine.assign(user.id, 'tenant-admin', tenant_id=tenant.id)
        authenticate(api_client, user)

        response = api_client.get('/v1/auth/me')

        assert response.data['tenant_id'] is None
        assert response.data['scopes'] == []

    def test_invalid_token(self, api_client, db):
        api_client.credentials(HTTP_AUTHORIZATION='Bearer not-a-jwt')

        response = api_client.get('/v1/auth/me')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()['error']['code'] == 'INVALID_TOKEN'
