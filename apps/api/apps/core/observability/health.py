"""
Health check endpoints.

Provides /healthz and /readyz endpoints for monitoring.
"""
import logging

import redis
from django.conf import settings
from django.db import connection
from django.http import JsonResponse
from django.views import View

logger = logging.getLogger(__name__)


class HealthzView(View):
    """
    Basic health check endpoint.

    Returns 200 OK if application is running.
    Does not check dependencies.
    """

    def get(self, request):
        """Return basic health status."""
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
    Checks database and (unless disabled) the Celery broker.
    """

    def get(self, request):
        """Return readiness status with dependency checks."""
        checks = {
            'database': self._check_database(),
        }
        if getattr(settings, 'READYZ_CHECK_BROKER', True):
            checks['broker'] = self._check_broker()

        all_healthy = all(checks.values())

        response_data = {
            'status': 'ready' if all_healthy else 'not_ready',
            'checks': checks,
        }

        return JsonResponse(response_data, status=200 if all_healthy else 503)

    def _check_database(self):
        """Check database connection."""
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

    def _check_broker(self):
        """Ping the redis broker used by Celery."""
        try:
            client = redis.Redis.from_url(settings.CELERY_BROKER_URL, socket_connect_timeout=2)
            return bool(client.ping())
        except redis.RedisError as e:
            logger.error(
                'Broker health check failed',
                extra={
                    'event': 'health_check_failed',
                    'check': 'broker',
                    'error': str(e)
                }
            )
            return False
