"""
Request Logging Middleware

Times every request, exposes the duration in X-Response-Time, records an API
usage entry and updates the periodic request counters.
"""

import time
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..core import log as app_log

logger = structlog.get_logger()

SLOW_REQUEST_MS = 1000
WRITE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Per-request timing and usage logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            app_log.log_stats.increment("errors")
            logger.error(
                "Unhandled error during request",
                path=path,
                method=request.method,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        response.headers["X-Response-Time"] = f"{duration_ms}ms"

        app_log.log_stats.increment("total_requests")
        if path.startswith("/api/admin"):
            app_log.log_stats.increment("admin_requests")
        else:
            app_log.log_stats.increment("public_requests")
        if response.status_code >= 500:
            app_log.log_stats.increment("errors")
        if duration_ms > SLOW_REQUEST_MS:
            app_log.log_stats.increment("slow_requests")

        app_log.api_usage(path, request.method, duration_ms)

        if path.startswith("/api/admin") or request.method in WRITE_METHODS:
            app_log.activity(
                "admin request" if path.startswith("/api/admin") else "data change request",
                method=request.method,
                endpoint=path,
                status_code=response.status_code,
                ip=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
            )

        return response
