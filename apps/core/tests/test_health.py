"""
Tests for the health check endpoint.
"""
from unittest.mock import patch

import pytest
from rest_framework import status


@pytest.mark.django_db
class TestHealthCheck:

    def test_healthy(self, api_client):
        response = api_client.get('/v1/health')

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {'status': 'healthy', 'database': 'healthy', 'cache': 'healthy'}

    def test_no_token_needed(self, api_client):
        api_client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')

        response = api_client.get('/v1/health')

        assert response.status_code == status.HTTP_200_OK

    @patch('apps.core.views.cache')
    def test_cache_failure(self, mock_cache, api_client):
        mock_cache.set.side_effect = ConnectionError('redis down')

        response = api_client.get('/v1/health')

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.data['cache'] == 'unhealthy'
        assert response.data['errors'] == ['Cache: redis down']
