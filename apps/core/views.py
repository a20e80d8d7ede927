"""
Core API views.
"""
import logging

from django.core.cache import cache
from django.db import connection
from drf_spectacular.utils import extend_schema, inline_serializer
from rest_framework import serializers, status
from rest_framework.response import Response
from rest_framework.views import APIView

logger = logging.getLogger(__name__)

HEALTH_CACHE_KEY = 'gatehouse:health'


def probe_database():
    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")


def probe_cache():
    cache.set(HEALTH_CACHE_KEY, 'ok', timeout=10)
    if cache.get(HEALTH_CACHE_KEY) != 'ok':
        raise RuntimeError("Unable to read test key")


HealthSerializer = inline_serializer(
    name='Health',
    fields={
        'status': serializers.CharField(),
        'database': serializers.CharField(),
        'cache': serializers.CharField(),
        'errors': serializers.ListField(child=serializers.CharField(), required=False),
    },
)


class HealthCheckView(APIView):
    """
    GET /v1/health

    Probes the database and the cache (which also backs scope caching and
    rate limit counters). 200 when both answer, 503 otherwise.
    """
    authentication_classes = []
    permission_classes = []

    probes = (
        ('database', 'Database', probe_database),
        ('cache', 'Cache', probe_cache),
    )

    @extend_schema(
        tags=['System'],
        summary="Health check",
        description="Check the database and cache used by the console.",
        responses={200: HealthSerializer, 503: HealthSerializer},
    )
    def get(self, request):
        body = {'status': 'healthy'}
        errors = []

        for key, label, probe in self.probes:
            try:
                probe()
            except Exception as e:
                body[key] = 'unhealthy'
                errors.append(f"{label}: {e}")
                logger.error(f"{label} health check failed", exc_info=True)
            else:
                body[key] = 'healthy'

        if errors:
            body['status'] = 'unhealthy'
            body['errors'] = errors
            return Response(body, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        return Response(body)
