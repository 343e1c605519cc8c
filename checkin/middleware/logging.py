"""
Wedding Check-In — Request Logging Middleware
===============================================

What:  One access-log line per HTTP request, with status and duration.
How:   Measures time around the downstream call and logs at a level chosen
       from the status code (5xx ERROR, 4xx WARNING, otherwise INFO).
When:  After RequestIDMiddleware, so the request ID is available.

What we log vs what we DON'T log:
    ✅ method, path, status, duration, client IP, request ID
    ✅ scan outcome (valid, invalid, table, unreadable) for check-in scans
    ❌ request bodies and query strings: scanned `data` values are live
       credentials for up to 24 hours
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from checkin.middleware.request_id import request_id_var

logger = logging.getLogger("checkin.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs structured information about each HTTP request and response.

    Typical durations:
        - POST /api/check-in/scan: 1-5ms (decode + HMAC)
        - POST /api/events/{id}/qr-codes/guest: 10-40ms (rendering)
        - POST /api/events/{id}/qr-codes/labels: grows with guest count
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()

        client_ip = getattr(request.client, "host", "unknown") if request.client else "unknown"
        method = request.method
        path = request.url.path
        rid = request_id_var.get("")

        # Health checks run every few seconds; logging them buries real traffic
        if path == "/health":
            return await call_next(request)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        # Set by the scan route or the unreadable-code handler
        scan_outcome = getattr(request.state, "scan_outcome", None)
        outcome_suffix = f" scan={scan_outcome}" if scan_outcome else ""

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s%s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            outcome_suffix,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "scan_outcome": scan_outcome,
            },
        )

        return response
