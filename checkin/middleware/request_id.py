"""
Wedding Check-In — Request ID Middleware
==========================================

What:  Assigns a short ID to each incoming request and returns it in the
       X-Request-ID response header.
How:   Stores the ID in a ContextVar (read by the access logger and the
       exception handlers) and in request.state (read by route handlers).
When:  Early in the middleware chain, right after rate limiting.

A check-in desk that shows "could not read this code (ref 1a2b3c4d)" lets
support find the exact scan in the server logs. Scanner devices may send
their own ID (e.g. "desk-3"); anything that is not a short token is replaced
so it cannot forge or break access-log lines.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

_CLIENT_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]{1,64}")


def resolve_request_id(header_value: str) -> str:
    """The client's ID when it is a short token, otherwise a fresh 8-char ID."""
    if header_value and _CLIENT_ID_PATTERN.fullmatch(header_value):
        return header_value
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Use the client's X-Request-ID header if it is a short token
        2. Otherwise generate an 8-character ID from a UUID4
        3. Store in ContextVar and request.state
        4. Echo in the response headers
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request.headers.get("X-Request-ID", ""))

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
