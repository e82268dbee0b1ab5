"""
ClimbApp Backend — Request Logging Middleware
=============================================

What:  One access log line per request: method, path, status, duration,
       request id and client address.
How:   Times the downstream call and logs at a level chosen by status class
       (5xx ERROR, 4xx WARNING, else INFO). Structured fields are attached
       via `extra` for log shippers.
Who:   Registered in main.create_app(); runs inside RequestIDMiddleware.

Not logged: request bodies. They carry base64 photos that are large and
may show people.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from climbapp.middleware.request_id import request_id_var

logger = logging.getLogger("climbapp.access")

# Probed every few seconds by the orchestrator
SKIPPED_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Access logging with request id correlation.

    Typical durations:
        - GET /health: 1-5ms
        - GET /api/v1/sites/{id}: 5-30ms (one site + its routes)
        - POST /api/v1/query: 500-2000ms (Vision product search dominates)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in SKIPPED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )

        return response
