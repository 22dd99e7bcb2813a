"""
Infrastructure views: health check and the API exception handler.
"""

import logging
import math

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse
from rest_framework.exceptions import Throttled
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import BaseApplicationError, RateLimitError

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Liveness/readiness check.

    The database is required (503 when unreachable). The cache backs the
    throttle counters only, so a cache outage is reported but still answers 200.

        {"status": "healthy", "database": "connected", "cache": "connected"}
    """
    body = {"status": "healthy", "database": "connected", "cache": "connected"}

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
    except DatabaseError:
        logger.exception("Health check: database unreachable")
        body["database"] = "disconnected"
        body["status"] = "unhealthy"

    try:
        cache.set("health_check", "ok", timeout=5)
        if cache.get("health_check") != "ok":
            body["cache"] = "disconnected"
    except Exception:
        logger.warning("Health check: cache unreachable", exc_info=True)
        body["cache"] = "disconnected"

    return JsonResponse(body, status=200 if body["status"] == "healthy" else 503)


def application_exception_handler(exc, context):
    """
    DRF exception handler that renders application errors.

    Registered as REST_FRAMEWORK["EXCEPTION_HANDLER"]. BaseApplicationError
    subclasses raised from services become their to_dict() body with the
    error's http_status. DRF throttling renders as a RateLimitError body and
    keeps its Retry-After header. Everything else goes through DRF's
    default handler.
    """
    if isinstance(exc, Throttled):
        retry_after = math.ceil(exc.wait) if exc.wait is not None else None
        error = RateLimitError(
            "Too many requests. Please try again later.",
            details={"retry_after": retry_after},
        )
        headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
        return Response(error.to_dict(), status=error.http_status, headers=headers)
    if isinstance(exc, BaseApplicationError):
        if exc.http_status >= 500:
            logger.error(
                f"Upstream failure in {context.get('view').__class__.__name__}: {exc}",
                extra={"error_code": exc.error_code},
            )
        return Response(exc.to_dict(), status=exc.http_status)
    return exception_handler(exc, context)
