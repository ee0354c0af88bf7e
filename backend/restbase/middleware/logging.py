"""
RestBase: Request Logging Middleware
=====================================

What:  One access-log line per HTTP request.
How:   Measures the time spent in the rest of the stack and logs method,
       path, matched route, status, duration and request id on the
       `restbase.access` logger. The level follows the status class:
       5xx → ERROR, 4xx → WARNING, everything else → INFO.

Example:
    GET /books/7 → Book.get 404 3.1ms [a1b2c3d4]

Requests that escape the exception handlers are logged as 500 and re-raised.
Request bodies are never logged.
"""

import logging
import time
from typing import Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from restbase.middleware.request_id import request_id_var

logger = logging.getLogger("restbase.access")


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Args:
        app:          Downstream ASGI app
        quiet_paths:  Paths never logged (load balancer probes)
    """

    def __init__(self, app: ASGIApp, quiet_paths: Iterable[str] = ("/health",)):
        super().__init__(app)
        self.quiet_paths = frozenset(quiet_paths)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.quiet_paths:
            return await call_next(request)

        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            self._log(request, status, (time.perf_counter() - started) * 1000)

    def _log(self, request: Request, status: int, duration_ms: float) -> None:
        rid = request_id_var.get("")
        route = _route_name(request)
        logger.log(
            _level_for(status),
            "%s %s → %s %d %.1fms [%s]",
            request.method,
            request.url.path,
            route or "-",
            status,
            duration_ms,
            rid,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.url.path,
                "route": route,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": request.client.host if request.client else None,
            },
        )


def _route_name(request: Request) -> Optional[str]:
    # Set by the router on the shared scope once a route matched
    route = request.scope.get("route")
    return getattr(route, "name", None)
