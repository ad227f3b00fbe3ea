"""
Health check and metrics endpoints.

Provides /healthz, /readyz and /metrics for monitoring.
"""
import logging
from django.http import HttpResponse, JsonResponse
from django.views import View
from django.db import connection
from django.conf import settings
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = logging.getLogger(__name__)


class HealthzView(View):
    """
    Basic health check endpoint.

    Returns 200 OK if application is running.
    Does not check dependencies.
    """

    def get(self, request):
        health_data = {
            'status': 'ok',
            'version': getattr(settings, 'VERSION', 'unknown'),
        }

        commit_hash = getattr(settings, 'COMMIT_HASH', None)
        if commit_hash:
            health_data['commit'] = commit_hash

        return JsonResponse(health_data, status=200)


class ReadyzView(View):
    """
    Readiness check endpoint.

    Returns 200 OK if application is ready to serve traffic.
    Checks database connection.
    """

    def get(self, request):
        checks = {
            'database': self._check_database(),
        }

        all_healthy = all(checks.values())

        response_data = {
            'status': 'ready' if all_healthy else 'not_ready',
            'checks': checks,
        }

        return JsonResponse(response_data, status=200 if all_healthy else 503)

    def _check_database(self):
        try:
            with connection.cursor() as cursor:
                cursor.execute('SELECT 1')
                return True
        except Exception as e:
            logger.error(
                'Database health check failed',
                extra={
                    'event': 'health_check_failed',
                    'check': 'database',
                    'error': str(e)
                }
            )
            return False


class MetricsView(View):
    """Prometheus exposition of the default registry."""

    def get(self, request):
        return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)
