"""
Infrastructure endpoints for load balancers and container orchestrators.
"""

import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse
from django_redis import get_redis_connection
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Report database and Redis reachability.

    Response body:
        {"status": "healthy" | "degraded" | "unhealthy",
         "database": "connected" | "disconnected",
         "redis": "connected" | "disconnected"}

    HTTP Status Codes:
        200: Database reachable. Without Redis the service is "degraded":
             history and stats still work, refunds cannot take their
             item lock.
        503: Database unreachable
    """
    body = {"status": "healthy", "database": "connected", "redis": "connected"}

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
    except DatabaseError:
        logger.exception("Health check: database unreachable")
        body["database"] = "disconnected"

    try:
        get_redis_connection("default").ping()
    except RedisError:
        logger.warning("Health check: redis unreachable", exc_info=True)
        body["redis"] = "disconnected"

    if body["database"] == "disconnected":
        body["status"] = "unhealthy"
        return JsonResponse(body, status=503)
    if body["redis"] == "disconnected":
        body["status"] = "degraded"
    return JsonResponse(body)
