"""
Wedding Check-In — QR Image Renderer
======================================

What:  Turns a URL into a PNG QR code and back into / out of data URLs.
How:   `qrcode` builds the symbol, Pillow scales it to the exact pixel size
       and encodes the PNG.
Who:   Called by CheckInTokenService (in a worker thread) for guest and
       table codes.

Sizing:
    The QR symbol is a grid of modules (21×21 up to 177×177 depending on how
    much data it carries) plus a quiet zone of `margin` modules on every side.
    We pick the largest whole-pixel box size that fits in the requested size,
    then resize with nearest-neighbour so module edges stay sharp.
"""

import base64
import binascii
import io
import logging

import qrcode
from PIL import Image
from qrcode.exceptions import DataOverflowError

from checkin.exceptions import QRGenerationError
from checkin.schemas.check_in import ErrorCorrectionLevel, RenderOptions

logger = logging.getLogger(__name__)

PNG_DATA_URL_PREFIX = "data:image/png;base64,"

ERROR_CORRECTION_CONSTANTS = {
    ErrorCorrectionLevel.LOW: qrcode.constants.ERROR_CORRECT_L,
    ErrorCorrectionLevel.MEDIUM: qrcode.constants.ERROR_CORRECT_M,
    ErrorCorrectionLevel.QUARTILE: qrcode.constants.ERROR_CORRECT_Q,
    ErrorCorrectionLevel.HIGH: qrcode.constants.ERROR_CORRECT_H,
}


def render_qr_png(data: str, options: RenderOptions) -> bytes:
    """
    Render `data` as a square PNG QR code.

    Args:
        data:    Text to encode (the check-in or table-info URL).
        options: Fully resolved render options (no None fields).

    Returns:
        PNG bytes, exactly `options.size` pixels on each side.

    Raises:
        QRGenerationError: data too long for the chosen error-correction level,
            or the image could not be encoded.
    """
    qr = qrcode.QRCode(
        version=None,  # smallest version that fits
        error_correction=ERROR_CORRECTION_CONSTANTS[options.error_correction],
        box_size=1,
        border=options.margin,
    )
    qr.add_data(data)

    try:
        qr.make(fit=True)
    except DataOverflowError as e:
        logger.error("QR data overflow: %d chars at level %s", len(data), options.error_correction.value)
        raise QRGenerationError(
            context={"data_length": len(data), "error_correction": options.error_correction.value},
        ) from e

    modules_with_border = qr.modules_count + 2 * options.margin
    qr.box_size = max(1, options.size // modules_with_border)

    try:
        image = qr.make_image(
            fill_color=options.dark_color,
            back_color=options.light_color,
        ).get_image()
        if image.size != (options.size, options.size):
            image = image.resize((options.size, options.size), Image.Resampling.NEAREST)

        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
    except (OSError, ValueError) as e:
        logger.error("QR image encoding failed: %s", str(e))
        raise QRGenerationError(context={"error": str(e)}) from e

    return buffer.getvalue()


def to_data_url(png: bytes) -> str:
    return PNG_DATA_URL_PREFIX + base64.b64encode(png).decode("ascii")


def from_data_url(data_url: str) -> bytes:
    """Extract PNG bytes from a data URL produced by `to_data_url`."""
    if not data_url.startswith(PNG_DATA_URL_PREFIX):
        raise ValueError("Not a PNG data URL")
    try:
        return base64.b64decode(data_url[len(PNG_DATA_URL_PREFIX):], validate=True)
    except binascii.Error as e:
        raise ValueError("Malformed PNG data URL") from e
