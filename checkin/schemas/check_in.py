"""
Wedding Check-In — Pydantic Payload & API Schemas
===================================================

What:  Pydantic models for the data embedded in QR codes and for the HTTP API.
How:   Payload models serialize with camelCase aliases so the JSON inside a
       code matches what the web app's /check-in and /table-info pages read.
Who:   Built and parsed by CheckInTokenService; returned by route handlers.

Two payload variants travel inside codes:

    CheckInPayload    signed guest credential (has checkInCode)
    TableInfoPayload  unsigned table information (type == "table")

They are combined into the `ScannedCode` tagged union so a caller that scans
an arbitrary code has to branch on which one it got.
"""

from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

from PIL import ImageColor
from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator


# ══════════════════════════════════════════════════════════════════════════
# Embedded Payloads — What lives inside a QR code
# ══════════════════════════════════════════════════════════════════════════


class CheckInPayload(BaseModel):
    """
    Guest check-in credential.

    Every field is optional at the model level: a decoded code with a field
    missing is still a readable code, and `validate` reports which field is
    absent instead of decoding failing.
    """

    KIND: ClassVar[str] = "guest"

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    guest_id: Optional[str] = Field(default=None, alias="guestId")
    event_id: Optional[str] = Field(default=None, alias="eventId")
    table_number: Optional[str] = Field(default=None, alias="tableNumber")
    timestamp: Optional[str] = Field(default=None, description="UTC ISO 8601 creation time")
    check_in_code: Optional[str] = Field(default=None, alias="checkInCode")


class TableInfoPayload(BaseModel):
    """Informational table code. Not a credential; carries no check-in code."""

    KIND: ClassVar[str] = "table"

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    table_id: str = Field(alias="tableId")
    table_name: str = Field(alias="tableName")
    event_id: str = Field(alias="eventId")
    type: Literal["table"] = "table"
    timestamp: str


def _scanned_code_kind(value: Any) -> str:
    if isinstance(value, dict):
        return "table" if value.get("type") == "table" else "guest"
    return getattr(value, "KIND", "guest")


ScannedCode = Annotated[
    Union[
        Annotated[CheckInPayload, Tag("guest")],
        Annotated[TableInfoPayload, Tag("table")],
    ],
    Discriminator(_scanned_code_kind),
]


class CheckInValidation(BaseModel):
    """Outcome of validating a guest payload. `valid` iff `errors` is empty."""

    valid: bool
    errors: List[str] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════
# Rendering & Layout Options
# ══════════════════════════════════════════════════════════════════════════


class ErrorCorrectionLevel(str, Enum):
    """
    QR error-correction levels.

    Higher levels make the symbol denser but let it survive more damage,
    which matters for labels that get folded into place cards.
    """

    LOW = "L"        # ~7% of codewords recoverable
    MEDIUM = "M"     # ~15%
    QUARTILE = "Q"   # ~25%
    HIGH = "H"       # ~30%


_LEVEL_NAMES = {level.name.lower(): level.value for level in ErrorCorrectionLevel}


class RenderOptions(BaseModel):
    """
    How a QR image is drawn. Unset fields fall back to per-code-type defaults
    (see GUEST_RENDER_DEFAULTS / TABLE_RENDER_DEFAULTS).
    """

    size: Optional[int] = Field(default=None, ge=32, le=4096, description="Output width/height in pixels")
    margin: Optional[int] = Field(default=None, ge=0, le=64, description="Quiet zone in modules")
    dark_color: Optional[str] = Field(default=None, description="Module color, e.g. #000000")
    light_color: Optional[str] = Field(default=None, description="Background color, e.g. #FFFFFF")
    error_correction: Optional[ErrorCorrectionLevel] = None

    @field_validator("dark_color", "light_color")
    @classmethod
    def validate_color(cls, v: Optional[str]) -> Optional[str]:
        """Rejects anything Pillow cannot draw with."""
        if v is not None:
            ImageColor.getrgb(v)  # raises ValueError on unknown specifiers
        return v

    @field_validator("error_correction", mode="before")
    @classmethod
    def accept_level_names(cls, v: Any) -> Any:
        """Accepts 'low'/'medium'/'quartile'/'high' as well as L/M/Q/H."""
        if isinstance(v, str):
            return _LEVEL_NAMES.get(v.lower(), v.upper())
        return v

    def merged_with(self, defaults: "RenderOptions") -> "RenderOptions":
        return defaults.model_copy(update=self.model_dump(exclude_none=True))


GUEST_RENDER_DEFAULTS = RenderOptions(
    size=300,
    margin=4,
    dark_color="#000000",
    light_color="#FFFFFF",
    error_correction=ErrorCorrectionLevel.MEDIUM,
)

TABLE_RENDER_DEFAULTS = RenderOptions(
    size=400,
    margin=4,
    dark_color="#000000",
    light_color="#FFFFFF",
    error_correction=ErrorCorrectionLevel.HIGH,
)


class LabelLayout(BaseModel):
    """
    Printable label sheet layout.

    Each label cell is `label_size` pixels wide; the QR image inside is 40px
    smaller to leave room for the name and table lines.
    """

    labels_per_row: int = Field(default=3, ge=1, le=12)
    label_size: int = Field(default=200, ge=80, le=2000)
    include_guest_name: bool = True
    include_table_number: bool = True

    @property
    def qr_size(self) -> int:
        return self.label_size - 40


# ══════════════════════════════════════════════════════════════════════════
# Request Models — What clients send
# ══════════════════════════════════════════════════════════════════════════


class GuestInput(BaseModel):
    """
    Guest-like record as posted by the web app.

    `id` is optional here on purpose: a batch may contain a broken record,
    and the batch policy is to skip it rather than reject the whole request.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: Optional[str] = None
    table_number: Optional[str] = Field(default=None, alias="tableNumber")


class GuestQRCodeRequest(BaseModel):
    guest: GuestInput
    table_number: Optional[str] = None
    options: Optional[RenderOptions] = None


class BulkQRCodeRequest(BaseModel):
    guests: List[GuestInput] = Field(max_length=2000)
    options: Optional[RenderOptions] = None


class LabelSheetRequest(BaseModel):
    guests: List[GuestInput] = Field(max_length=2000)
    layout: Optional[LabelLayout] = None


class TableQRCodeRequest(BaseModel):
    table_name: str = Field(min_length=1, max_length=200)
    options: Optional[RenderOptions] = None


class ScanRequest(BaseModel):
    """Raw text read by the scanner: the full URL or just the `data` value."""

    scanned: str = Field(min_length=1, max_length=8192)


# ══════════════════════════════════════════════════════════════════════════
# Response Models — What the API returns
# ══════════════════════════════════════════════════════════════════════════


class GuestQRCodeResponse(BaseModel):
    guest_id: str
    image: str = Field(description="PNG data URL")


class BulkQRCodeResponse(BaseModel):
    images: Dict[str, str] = Field(description="Guest ID → PNG data URL")
    generated: int
    skipped: int = Field(description="Guests left out because generation failed")


class TableQRCodeResponse(BaseModel):
    table_id: str
    image: str = Field(description="PNG data URL")


class GuestScanResponse(BaseModel):
    """
    Result of scanning a guest code.

    `valid: false` is a normal outcome (HTTP 200); the scanner shows the
    errors and staff may still check the guest in manually.
    """

    kind: Literal["guest"] = "guest"
    payload: CheckInPayload
    valid: bool
    errors: List[str]


class TableScanResponse(BaseModel):
    kind: Literal["table"] = "table"
    payload: TableInfoPayload


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "invalid_qr_code",
            "message": "Invalid QR code data",
            "request_id": "1a2b3c4d"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded")
    version: str = Field(description="Application version")
    signing: str = Field(description="Signing secret: configured, missing")
    uptime_seconds: float = Field(description="Seconds since service started")
