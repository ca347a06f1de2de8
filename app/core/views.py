"""
Infrastructure endpoints that sit outside the settlement API.
"""

import logging

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Report database, cache and gateway configuration health.

    Used by Docker health checks, Kubernetes probes and load balancers.

    Returns 200 when the database is reachable and 503 otherwise. The cache
    is reported but treated as degradable. A missing gateway secret is
    reported as "missing" so deployments with no credentials are visible
    before the first payment call fails.

    Example Response:
        {
            "status": "healthy",
            "database": "connected",
            "cache": "connected",
            "gateway": "configured"
        }
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
        "gateway": "configured" if settings.FLUTTERWAVE_SECRET_KEY else "missing",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except DatabaseError:
        logger.exception("Health check could not reach the database")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    # django-redis is configured with IGNORE_EXCEPTIONS, so a dead Redis
    # shows up as a missed read rather than an exception
    cache.set("health_check", "ok", timeout=1)
    health_status["cache"] = (
        "connected" if cache.get("health_check") == "ok" else "disconnected"
    )

    return JsonResponse(health_status, status=200 if is_healthy else 503)
