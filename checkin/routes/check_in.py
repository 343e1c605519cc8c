"""
Wedding Check-In — Scan Route Handler
=======================================

What:  Handles POST /api/check-in/scan for codes read at the check-in desk.
How:   Decodes the scanned text, then validates guest codes.
Who:   Called by the day-of check-in scanner screen.

Outcomes:
    - Unreadable code             → 400 invalid_qr_code ("could not read this code")
    - Guest code, bad or expired  → 200, valid=false, errors listed
    - Guest code, good            → 200, valid=true
    - Table code                  → 200, kind="table", table information only

Actually marking the guest as arrived belongs to the guest store, which the
scanner calls next with `payload.guestId`.
"""

import logging
from typing import Union

from fastapi import APIRouter, Depends, Request

from checkin.routes.deps import get_check_in_service
from checkin.schemas.check_in import (
    CheckInPayload,
    ErrorResponse,
    GuestScanResponse,
    ScanRequest,
    TableScanResponse,
)
from checkin.services.check_in_service import CheckInTokenService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/check-in", tags=["Check-In"])


@router.post(
    "/scan",
    response_model=Union[GuestScanResponse, TableScanResponse],
    responses={
        400: {"description": "Code could not be read", "model": ErrorResponse},
        429: {"description": "Rate limit exceeded", "model": ErrorResponse},
        500: {"description": "Signing secret not configured", "model": ErrorResponse},
    },
    summary="Decode and validate a scanned QR code",
)
async def scan_code(
    body: ScanRequest,
    request: Request,
    service: CheckInTokenService = Depends(get_check_in_service),
) -> Union[GuestScanResponse, TableScanResponse]:
    """
    Decode a scanned code and, for guest codes, verify signature and expiry.

    Invalid or expired guest codes are not errors at the HTTP level: the
    response carries every reason so staff can decide on a manual check-in.
    """
    code = service.decode_scanned(body.scanned)

    if not isinstance(code, CheckInPayload):
        logger.info("Table code scanned: table %s at event %s", code.table_id, code.event_id)
        request.state.scan_outcome = "table"
        return TableScanResponse(payload=code)

    result = service.validate(code)
    request.state.scan_outcome = "valid" if result.valid else "invalid"
    if result.valid:
        logger.info("Valid check-in scan: guest %s at event %s", code.guest_id, code.event_id)
    return GuestScanResponse(payload=code, valid=result.valid, errors=result.errors)
