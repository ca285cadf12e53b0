"""
Health check endpoints for Kubernetes/Docker probes.

- /healthz - Liveness (is process running?)
- /readyz - Readiness (can we serve traffic?)
"""
import logging
from datetime import datetime, timezone

from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.views.decorators.http import require_GET
from django.views.decorators.csrf import csrf_exempt

logger = logging.getLogger(__name__)


def get_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


@csrf_exempt
@require_GET
def healthz(request):
    """
    Liveness probe endpoint.

    Returns 200 if the Django process is running.
    Does NOT check dependencies - that's for readiness.
    """
    return JsonResponse({
        'status': 'healthy',
        'timestamp': get_timestamp()
    })


def check_database() -> tuple[str, bool]:
    """Check database connectivity."""
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
            cursor.fetchone()
        return 'ok', True
    except DatabaseError as e:
        logger.error(f"Database health check failed: {e}")
        return f'error: {str(e)[:50]}', False


@csrf_exempt
@require_GET
def readyz(request):
    """
    Readiness probe endpoint.

    Returns 200 only if the database is reachable. Model providers are
    not probed; their failures are reported per request.
    """
    status, ok = check_database()

    return JsonResponse(
        {
            'status': 'ready' if ok else 'not_ready',
            'timestamp': get_timestamp(),
            'checks': {'database': status},
        },
        status=200 if ok else 503
    )
