"""
Wedding Check-In — Rate Limiting Middleware
=============================================

What:  Per-IP sliding window rate limiter.
How:   Keeps a list of request timestamps per client IP in memory; requests
       beyond the limit inside the window get 429 with Retry-After.
When:  First in the middleware chain.

A check-in code is 64 bits, which is only safe while guessing is slow. The
scan endpoint is therefore the one this limiter really protects.

Algorithm: Sliding Window Log
    1. Drop timestamps older than the window for this IP
    2. If remaining count >= limit, reject with 429
    3. Otherwise record the current timestamp and continue

Single-process only: the counters live in this worker's memory.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from checkin.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Args:
        max_requests:   Requests allowed per window per IP.
        window_seconds: Window length.

    Excluded paths: /health and the API docs.
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, max_requests: int = 300, window_seconds: int = 3600, **kwargs):
        super().__init__(app, **kwargs)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._requests: Dict[str, List[float]] = defaultdict(list)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        # Behind a proxy this is the proxy's IP; configure uvicorn's
        # --forwarded-allow-ips so request.client reflects the real client.
        client_ip = (
            getattr(request.client, "host", "unknown")
            if request.client
            else "unknown"
        )

        now = time.time()
        window_start = now - self.window_seconds

        self._requests[client_ip] = [
            ts for ts in self._requests[client_ip] if ts > window_start
        ]

        if len(self._requests[client_ip]) >= self.max_requests:
            oldest = self._requests[client_ip][0]
            exc = RateLimitExceededError(
                retry_after=int(oldest + self.window_seconds - now) + 1,
            )

            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(self._requests[client_ip]),
                self.window_seconds,
            )

            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": exc.message,
                    "details": exc.context,
                },
                headers={"Retry-After": str(exc.retry_after)},
            )

        self._requests[client_ip].append(now)

        # Every ~1000 tracked requests, forget IPs that went quiet
        if sum(len(v) for v in self._requests.values()) % 1000 == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or max(timestamps) < window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]

        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
