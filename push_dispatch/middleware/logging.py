"""
Household Push Dispatch: Access Log Middleware
==============================================

What:  One log line per HTTP request: method, path, status, duration, client.
Who:   Applied to every request; runs inside RequestIDMiddleware so the
       request ID is already set.

Never logged: request bodies (device tokens, message text) and the
Authorization header.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from push_dispatch.middleware.request_id import request_id_var

logger = logging.getLogger("push_dispatch.access")

QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log level follows the status:
        5xx → ERROR, 4xx → WARNING, otherwise INFO.
    Health probes are skipped unless they fail.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method
        path = request.url.path

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if path in QUIET_PATHS and status < 500:
            return response

        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms from %s",
            method,
            path,
            status,
            duration_ms,
            client_ip,
            extra={
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "request_id": request_id_var.get(""),
            },
        )
        return response
