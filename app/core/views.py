"""
Core views providing infrastructure endpoints.

The health check reports the backing services the settlement pipeline
depends on. The database and the idempotency cache are required: refunds
are rejected while the idempotency cache is unreachable. The default cache
only backs webhook locks and is reported as degraded.
"""

import logging

from django.conf import settings
from django.core.cache import caches
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)

HEALTH_KEY = "health_check"


def _database_ok() -> bool:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError:
        logger.exception("Health check: database unreachable")
        return False
    return True


def _cache_ok(alias: str) -> bool:
    try:
        cache = caches[alias]
        cache.set(HEALTH_KEY, "ok", timeout=5)
        return cache.get(HEALTH_KEY) == "ok"
    except Exception:
        logger.warning("Health check: cache %s unreachable", alias, exc_info=True)
        return False


def health_check(request):
    """
    Health check for load balancers and container orchestrators.

    Returns:
        JsonResponse with one entry per component:
        - status: "healthy", "degraded" or "unhealthy"
        - database / idempotency_cache / cache: "connected" or "disconnected"

    HTTP Status Codes:
        200: healthy or degraded
        503: the database or the idempotency cache is down

    Example Response:
        {
            "status": "degraded",
            "database": "connected",
            "idempotency_cache": "connected",
            "cache": "disconnected"
        }
    """
    checks = {
        "database": _database_ok(),
        "idempotency_cache": _cache_ok(settings.IDEMPOTENCY_CACHE_ALIAS),
        "cache": _cache_ok("default"),
    }
    body = {name: "connected" if ok else "disconnected" for name, ok in checks.items()}

    if not (checks["database"] and checks["idempotency_cache"]):
        body["status"] = "unhealthy"
        return JsonResponse(body, status=503)

    body["status"] = "healthy" if checks["cache"] else "degraded"
    return JsonResponse(body, status=200)
