"""
Tests for PII masking, the JSON formatter and request id propagation.
"""
import json
import logging

import pytest

from apps.core.logging import JSONFormatter, PIIMasker


class TestPIIMasker:

    def test_mask_email(self):
        assert PIIMasker.mask_email('login by john@example.com') == 'login by j***@example.com'

    def test_mask_tokens(self):
        assert PIIMasker.mask_text('token=abc123') == 'token: ********'
        assert PIIMasker.mask_text('Bearer eyJhbGciOi.payload.sig') == 'Bearer ********'

    def test_mask_dict(self):
        masked = PIIMasker.mask_dict({
            'password': 'hunter2',
            'email': 'jane@example.com',
            'nested': {'refresh_token': 'abc'},
            'count': 3,
        })

        assert masked == {
            'password': '********',
            'email': 'j***@example.com',
            'nested': {'refresh_token': '********'},
            'count': 3,
        }


class TestJSONFormatter:

    def test_format_with_context(self):
        record = logging.LogRecord(
            'apps.rbac', logging.WARNING, __file__, 10,
            'Failed login for %s', ('jane@example.com',), None,
        )
        record.request_id = 'req-1'
        record.tenant_id = 'tenant-1'
        record.role_slug = 'auditor'

        data = json.loads(JSONFormatter().format(record))

        assert data['level'] == 'WARNING'
        assert data['message'] == 'Failed login for j***@example.com'
        assert data['request_id'] == 'req-1'
        assert data['tenant_id'] == 'tenant-1'
        assert data['role_slug'] == 'auditor'

    def test_unserialisable_extra(self):
        record = logging.LogRecord('apps.audit', logging.INFO, __file__, 1, 'msg', (), None)
        record.payload = object()

        data = json.loads(JSONFormatter().format(record))

        assert data['payload'].startswith('<object object')


@pytest.mark.django_db
class TestRequestId:

    def test_health_echoes_request_id(self, api_client):
        response = api_client.get('/v1/health', HTTP_X_REQUEST_ID='trace-7')

        assert response['X-Request-ID'] == 'trace-7'

    def test_request_id_generated(self, api_client):
        response = api_client.get('/v1/health')

        assert response['X-Request-ID']
