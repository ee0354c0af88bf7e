"""
RestBase: Request ID Middleware
================================

What:  Assigns an id to each incoming request and returns it in X-Request-ID.
How:   Uses the client's X-Request-ID header when well-formed, otherwise a short
       random UUID. Stores it in a ContextVar for loggers and exception
       handlers, and in request.state for hooks.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Client ids longer than this, or with anything outside [A-Za-z0-9._-], are replaced
MAX_CLIENT_ID_LENGTH = 64
_ALLOWED = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789._-")


def new_request_id() -> str:
    return str(uuid.uuid4())[:8]


def accept_client_id(value: str) -> bool:
    return 0 < len(value) <= MAX_CLIENT_ID_LENGTH and set(value) <= _ALLOWED


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Take X-Request-ID from the request if the client sent a usable one
        2. Otherwise generate the first 8 characters of a UUID4
        3. Store it in `request_id_var` and `request.state.request_id`
        4. Echo it back in the X-Request-ID response header
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        client_id = request.headers.get("X-Request-ID", "")
        rid = client_id if accept_client_id(client_id) else new_request_id()
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)

        response.headers["X-Request-ID"] = rid
        return response
