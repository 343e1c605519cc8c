"""
Wedding Check-In — QR Code Generation Routes
==============================================

What:  Endpoints the guest-list screens call to produce QR codes.
How:   Each handler passes the posted guest records straight to
       CheckInTokenService and wraps the result.
Who:   The guest QR generator screen (single, bulk, print labels, download
       all) and the seating screen (table codes).

Batch endpoints follow the service's best-effort policy: guests whose code
cannot be generated are left out and the request still succeeds.
"""

import logging
import re
from typing import Annotated

from fastapi import APIRouter, Depends, Path
from fastapi.responses import HTMLResponse, Response

from checkin.exceptions import ValidationError
from checkin.routes.deps import get_check_in_service
from checkin.schemas.check_in import (
    BulkQRCodeRequest,
    BulkQRCodeResponse,
    ErrorResponse,
    GuestQRCodeRequest,
    GuestQRCodeResponse,
    LabelSheetRequest,
    TableQRCodeRequest,
    TableQRCodeResponse,
)
from checkin.services.check_in_service import CheckInTokenService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events/{event_id}", tags=["QR Codes"])

EventId = Annotated[str, Path(min_length=1, max_length=128, description="Event identifier")]
TableId = Annotated[str, Path(min_length=1, max_length=128, description="Table identifier")]

_ERROR_RESPONSES = {
    400: {"description": "Invalid guest or render options", "model": ErrorResponse},
    429: {"description": "Rate limit exceeded", "model": ErrorResponse},
    500: {"description": "Signing secret not configured or rendering failed", "model": ErrorResponse},
}


@router.post(
    "/qr-codes/guest",
    response_model=GuestQRCodeResponse,
    responses=_ERROR_RESPONSES,
    summary="Generate one guest check-in QR code",
)
async def generate_guest_code(
    body: GuestQRCodeRequest,
    event_id: EventId,
    service: CheckInTokenService = Depends(get_check_in_service),
) -> GuestQRCodeResponse:
    if not body.guest.id:
        raise ValidationError(message="Guest record has no id", field="guest.id")

    image = await service.generate(
        body.guest,
        event_id,
        body.table_number or body.guest.table_number,
        body.options,
    )
    return GuestQRCodeResponse(guest_id=body.guest.id, image=image)


@router.post(
    "/qr-codes/bulk",
    response_model=BulkQRCodeResponse,
    responses=_ERROR_RESPONSES,
    summary="Generate check-in QR codes for many guests",
)
async def generate_bulk_codes(
    body: BulkQRCodeRequest,
    event_id: EventId,
    service: CheckInTokenService = Depends(get_check_in_service),
) -> BulkQRCodeResponse:
    images = await service.generate_bulk(body.guests, event_id, body.options)
    return BulkQRCodeResponse(
        images=images,
        generated=len(images),
        skipped=len(body.guests) - len(images),
    )


@router.post(
    "/qr-codes/labels",
    response_class=HTMLResponse,
    responses=_ERROR_RESPONSES,
    summary="Printable HTML label sheet",
)
async def generate_label_sheet(
    body: LabelSheetRequest,
    event_id: EventId,
    service: CheckInTokenService = Depends(get_check_in_service),
) -> HTMLResponse:
    html = await service.generate_label_sheet(body.guests, event_id, body.layout)
    return HTMLResponse(content=html)


@router.post(
    "/qr-codes/archive",
    response_class=Response,
    responses={200: {"content": {"application/zip": {}}}, **_ERROR_RESPONSES},
    summary="Download all guest QR codes as a zip of PNG files",
)
async def download_archive(
    body: BulkQRCodeRequest,
    event_id: EventId,
    service: CheckInTokenService = Depends(get_check_in_service),
) -> Response:
    archive = await service.generate_bulk_archive(body.guests, event_id, body.options)
    file_name = re.sub(r"[^a-z0-9]", "-", event_id, flags=re.IGNORECASE) + "-qr-codes.zip"
    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.post(
    "/tables/{table_id}/qr-code",
    response_model=TableQRCodeResponse,
    responses=_ERROR_RESPONSES,
    summary="Generate an informational table QR code",
)
async def generate_table_code(
    body: TableQRCodeRequest,
    event_id: EventId,
    table_id: TableId,
    service: CheckInTokenService = Depends(get_check_in_service),
) -> TableQRCodeResponse:
    image = await service.generate_table_qr_code(table_id, body.table_name, event_id, body.options)
    return TableQRCodeResponse(table_id=table_id, image=image)
