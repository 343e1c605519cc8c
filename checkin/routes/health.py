"""
Wedding Check-In — Health Check Route
=======================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Reports whether the signing secret is usable; there are no other
       dependencies to probe.

Status levels:
    - healthy:   signing secret configured
    - degraded:  secret missing or placeholder; table codes and decoding
                 still work, guest codes cannot be signed or verified
"""

import logging
import time

from fastapi import APIRouter, Depends

from checkin import __version__
from checkin.routes.deps import get_check_in_service
from checkin.schemas.check_in import HealthResponse
from checkin.services.check_in_service import CheckInTokenService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    service: CheckInTokenService = Depends(get_check_in_service),
) -> HealthResponse:
    signing = "configured" if service.is_configured else "missing"
    if signing == "missing":
        logger.warning("Health check: QR_CODE_SECRET missing or placeholder")

    return HealthResponse(
        status="healthy" if service.is_configured else "degraded",
        version=__version__,
        signing=signing,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
