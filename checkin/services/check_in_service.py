"""
Wedding Check-In — Check-In Token Service
===========================================

What:  Generates, renders, decodes and validates guest check-in QR codes,
       and builds printable label sheets and download archives for batches.
How:   A check-in code is an HMAC-SHA256 signature over "<guestId>-<eventId>"
       truncated to 16 hex characters (64 bits). The signed payload is
       JSON-serialized, base64-encoded and embedded as the `data` query
       parameter of the web app's /check-in URL, which is then rendered as a
       QR image.
Who:   Constructed once by the application factory with the base URL and
       secret injected; shared by every request handler.

Token Lifecycle:
    generate ──▶ payload {guestId, eventId, tableNumber?, timestamp, checkInCode}
             ──▶ base64(JSON) ──▶ <baseUrl>/check-in?data=... ──▶ PNG data URL

    scan ──▶ decode(data) ──▶ CheckInPayload ──▶ validate ──▶ {valid, errors}

    Nothing is stored. Verification recomputes the expected code from the
    payload's own guest/event IDs and checks the embedded timestamp against
    the wall clock.

Replay Behaviour:
    The code is deterministic per (guest, event). There is no nonce and no
    "used" flag, so the same image keeps working for any number of scans
    until 24 hours after it was generated. Re-entry and re-printing depend on
    this.

Table Codes:
    Table codes carry {tableId, tableName, eventId, type: "table", timestamp}
    and are NOT signed. They only show table information and never gate
    entry.
"""

import asyncio
import base64
import binascii
import hashlib
import hmac
import io
import json
import logging
import re
import zipfile
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qs, quote, urlsplit

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from checkin.config import PLACEHOLDER_SECRET
from checkin.exceptions import (
    ConfigurationError,
    InvalidQRCodeError,
    QRGenerationError,
    ValidationError,
)
from checkin.schemas.check_in import (
    GUEST_RENDER_DEFAULTS,
    TABLE_RENDER_DEFAULTS,
    CheckInPayload,
    CheckInValidation,
    LabelLayout,
    RenderOptions,
    ScannedCode,
    TableInfoPayload,
)
from checkin.services import label_sheet
from checkin.services.qr_renderer import from_data_url, render_qr_png, to_data_url

logger = logging.getLogger(__name__)

# ── Token Constants ───────────────────────────────────────────────────────
# 16 hex chars = 64 bits: compact enough for small labels, far beyond what
# can be brute-forced for one guest/event pair inside the validity window.
CHECK_IN_CODE_LENGTH = 16

# How long after generation a printed or screenshotted code keeps working.
CHECK_IN_VALIDITY = timedelta(hours=24)

CHECK_IN_PATH = "/check-in"
TABLE_INFO_PATH = "/table-info"

# Validation messages (shown verbatim on the check-in desk)
MSG_GUEST_ID_REQUIRED = "Guest ID is required"
MSG_EVENT_ID_REQUIRED = "Event ID is required"
MSG_CODE_REQUIRED = "Check-in code is required"
MSG_INVALID_CODE = "Invalid check-in code"
MSG_EXPIRED = "QR code has expired"
MSG_BAD_TIMESTAMP = "QR code timestamp is invalid"

_scanned_code_adapter = TypeAdapter(ScannedCode)


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """UTC ISO 8601 with millisecond precision and a Z suffix."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO 8601 timestamp from a payload.

    Naive timestamps are taken as UTC. Raises ValueError when unparseable.
    """
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def encode_payload(payload: Any) -> str:
    """base64(JSON) of a payload model, camelCase keys, absent fields omitted."""
    body = json.dumps(
        payload.model_dump(by_alias=True, exclude_none=True),
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return base64.b64encode(body.encode("utf-8")).decode("ascii")


def _decode_json_object(encoded: str) -> Dict[str, Any]:
    """
    base64 → UTF-8 → JSON object.

    Scanners and URL parsers sometimes turn '+' into ' ' or drop padding;
    both are repaired before decoding.
    """
    cleaned = encoded.strip().replace(" ", "+")
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        raw = base64.b64decode(cleaned, validate=True)
        data = json.loads(raw.decode("utf-8"))
    # RecursionError: deeply nested arrays/objects from a crafted code
    except (binascii.Error, UnicodeDecodeError, ValueError, RecursionError) as e:
        raise InvalidQRCodeError(context={"reason": type(e).__name__}) from e
    if not isinstance(data, dict):
        raise InvalidQRCodeError(context={"reason": "payload is not a JSON object"})
    return data


def _guest_value(guest: Any, *names: str) -> Optional[str]:
    """Read the first non-empty field from a mapping or an attribute-style record."""
    for name in names:
        if isinstance(guest, Mapping):
            value = guest.get(name)
        else:
            value = getattr(guest, name, None)
        if value is not None and str(value).strip():
            return str(value)
    return None


def unique_guests(guests: Iterable[Any]) -> List[Any]:
    """
    Drop later records that repeat an earlier guest id.

    Records without an id are kept so the batch can log and skip them.
    """
    unique, seen = [], set()
    for guest in guests:
        guest_id = _guest_value(guest, "id")
        if guest_id is not None:
            if guest_id in seen:
                logger.warning("Duplicate guest %s in batch; keeping the first record", guest_id)
                continue
            seen.add(guest_id)
        unique.append(guest)
    return unique


def archive_file_name(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "-", name, flags=re.IGNORECASE) + "-qr.png"


class CheckInTokenService:
    """
    Signs, renders, decodes and validates check-in QR codes.

    Stateless apart from two immutable settings:
        base_url: Prefix for embedded URLs ("" yields relative links).
        secret:   HMAC key. Checked lazily: only signing and verifying need
                  it, so table codes and decoding work without one.

    Concurrency:
        All methods are safe to call concurrently. Rendering is CPU-bound and
        runs in a worker thread so the event loop keeps serving scans while a
        large label sheet is being built.
    """

    def __init__(self, base_url: str = "", secret: Optional[str] = None):
        self.base_url = (base_url or "").rstrip("/")
        self._secret = secret or ""
        logger.info(
            "CheckInTokenService initialized (base_url=%r, signing=%s)",
            self.base_url,
            "configured" if self.is_configured else "missing",
        )

    # ── Signing ───────────────────────────────────────────────────────────

    @property
    def is_configured(self) -> bool:
        return bool(self._secret) and self._secret != PLACEHOLDER_SECRET

    def _require_secret(self) -> bytes:
        if not self._secret:
            raise ConfigurationError(context={"reason": "missing"})
        if self._secret == PLACEHOLDER_SECRET:
            raise ConfigurationError(context={"reason": "placeholder"})
        return self._secret.encode("utf-8")

    def compute_check_in_code(self, guest_id: str, event_id: str) -> str:
        """
        HMAC-SHA256(secret, "<guest_id>-<event_id>"), first 16 hex chars.

        Raises:
            ConfigurationError: secret missing or placeholder.
        """
        digest = hmac.new(
            self._require_secret(),
            f"{guest_id}-{event_id}".encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return digest[:CHECK_IN_CODE_LENGTH]

    # ── Payloads & URLs ───────────────────────────────────────────────────

    def build_check_in_payload(
        self,
        guest_id: str,
        event_id: str,
        table_number: Optional[str] = None,
    ) -> CheckInPayload:
        return CheckInPayload(
            guest_id=guest_id,
            event_id=event_id,
            table_number=table_number,
            timestamp=utc_timestamp(),
            check_in_code=self.compute_check_in_code(guest_id, event_id),
        )

    def build_check_in_url(self, payload: CheckInPayload) -> str:
        return f"{self.base_url}{CHECK_IN_PATH}?data={quote(encode_payload(payload), safe='')}"

    def build_table_info_url(self, payload: TableInfoPayload) -> str:
        return f"{self.base_url}{TABLE_INFO_PATH}?data={quote(encode_payload(payload), safe='')}"

    async def _render(self, url: str, options: RenderOptions) -> str:
        png = await asyncio.to_thread(render_qr_png, url, options)
        return to_data_url(png)

    # ── Guest Codes ───────────────────────────────────────────────────────

    async def generate(
        self,
        guest: Any,
        event_id: str,
        table_number: Optional[str] = None,
        options: Optional[RenderOptions] = None,
    ) -> str:
        """
        Generate a guest check-in QR code.

        Args:
            guest:        Guest-like record (mapping or object) with an `id`.
            event_id:     Event the guest is checking in to.
            table_number: Optional free text embedded in the payload.
            options:      Render overrides; unset fields use guest defaults
                          (300px, margin 4, black on white, level M).

        Returns:
            PNG data URL that scans to <base_url>/check-in?data=...

        Raises:
            ConfigurationError: signing secret missing or placeholder.
            ValidationError:    guest has no id or event_id is empty.
            QRGenerationError:  rendering failed.
        """
        self._require_secret()

        guest_id = _guest_value(guest, "id")
        if guest_id is None:
            raise ValidationError(message="Guest record has no id", field="guest.id")
        if not event_id:
            raise ValidationError(message="Event ID is required", field="event_id")

        payload = self.build_check_in_payload(guest_id, event_id, table_number)
        url = self.build_check_in_url(payload)
        image = await self._render(url, (options or RenderOptions()).merged_with(GUEST_RENDER_DEFAULTS))

        logger.debug("Generated check-in code for guest %s at event %s", guest_id, event_id)
        return image

    async def _generate_one(
        self,
        guest: Any,
        event_id: str,
        options: Optional[RenderOptions],
    ) -> Optional[Tuple[str, str]]:
        guest_id = _guest_value(guest, "id")
        try:
            image = await self.generate(
                guest,
                event_id,
                _guest_value(guest, "table_number", "tableNumber"),
                options,
            )
        except Exception as e:
            logger.warning(
                "Failed to generate QR code for guest %s: %s",
                guest_id or "<no id>",
                str(e),
            )
            return None
        return guest_id, image

    async def generate_bulk(
        self,
        guests: Iterable[Any],
        event_id: str,
        options: Optional[RenderOptions] = None,
    ) -> Dict[str, str]:
        """
        Generate codes for many guests concurrently.

        Best effort: a guest whose code fails (missing id, render error) is
        logged and left out of the result; the rest of the batch still
        completes. A configuration error is not a per-guest failure and is
        raised before any work starts.

        Returns:
            Mapping of guest id → PNG data URL, in input order.
        """
        self._require_secret()
        guests = unique_guests(guests)

        results = await asyncio.gather(
            *(self._generate_one(guest, event_id, options) for guest in guests)
        )
        images = dict(result for result in results if result is not None)

        skipped = len(guests) - len(images)
        if skipped:
            logger.warning(
                "Bulk generation for event %s: %d generated, %d skipped",
                event_id,
                len(images),
                skipped,
            )
        else:
            logger.info("Bulk generation for event %s: %d generated", event_id, len(images))
        return images

    async def generate_label_sheet(
        self,
        guests: Iterable[Any],
        event_id: str,
        layout: Optional[LabelLayout] = None,
    ) -> str:
        """
        Build a printable HTML label sheet.

        One label per successfully generated code, in input order. Guests
        dropped by `generate_bulk` simply have no label. A repeated guest id
        keeps its first record, the same one its code was generated from.
        """
        layout = layout or LabelLayout()
        guests = unique_guests(guests)
        images = await self.generate_bulk(guests, event_id, RenderOptions(size=layout.qr_size))

        labels = []
        for guest in guests:
            guest_id = _guest_value(guest, "id")
            if guest_id is None or guest_id not in images:
                continue
            labels.append(
                label_sheet.Label(
                    image=images[guest_id],
                    guest_name=_guest_value(guest, "name"),
                    table_number=_guest_value(guest, "table_number", "tableNumber"),
                )
            )

        return label_sheet.render_label_sheet(labels, layout)

    async def generate_bulk_archive(
        self,
        guests: Iterable[Any],
        event_id: str,
        options: Optional[RenderOptions] = None,
    ) -> bytes:
        """
        Zip of PNG files, one per generated guest code.

        Files are named after the guest ("Anna Smith" → Anna-Smith-qr.png),
        falling back to the guest id; clashes get a numeric suffix.
        """
        guests = unique_guests(guests)
        images = await self.generate_bulk(guests, event_id, options)

        buffer = io.BytesIO()
        used_names = set()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for guest in guests:
                guest_id = _guest_value(guest, "id")
                if guest_id is None or guest_id not in images:
                    continue
                file_name = archive_file_name(_guest_value(guest, "name") or guest_id)
                stem, counter = file_name[: -len(".png")], 2
                while file_name in used_names:
                    file_name = f"{stem}-{counter}.png"
                    counter += 1
                used_names.add(file_name)
                archive.writestr(file_name, from_data_url(images[guest_id]))

        logger.info("Built QR archive for event %s with %d files", event_id, len(used_names))
        return buffer.getvalue()

    # ── Table Codes ───────────────────────────────────────────────────────

    async def generate_table_qr_code(
        self,
        table_id: str,
        table_name: str,
        event_id: str,
        options: Optional[RenderOptions] = None,
    ) -> str:
        """
        Generate an informational table code (unsigned).

        Defaults: 400px, margin 4, black on white, level H.
        """
        payload = TableInfoPayload(
            table_id=table_id,
            table_name=table_name,
            event_id=event_id,
            timestamp=utc_timestamp(),
        )
        url = self.build_table_info_url(payload)
        try:
            return await self._render(url, (options or RenderOptions()).merged_with(TABLE_RENDER_DEFAULTS))
        except QRGenerationError as e:
            raise QRGenerationError(message="Failed to generate table QR code", context=e.context) from e

    # ── Decoding ──────────────────────────────────────────────────────────

    def decode(self, encoded: str) -> CheckInPayload:
        """
        Decode the `data` parameter of a scanned check-in URL.

        Raises:
            InvalidQRCodeError: base64, UTF-8 or JSON decoding failed.
        """
        data = _decode_json_object(encoded)
        try:
            return CheckInPayload.model_validate(data)
        except PydanticValidationError as e:
            raise InvalidQRCodeError(context={"reason": "unexpected field types"}) from e

    def decode_table_info(self, encoded: str) -> TableInfoPayload:
        data = _decode_json_object(encoded)
        try:
            return TableInfoPayload.model_validate(data)
        except PydanticValidationError as e:
            raise InvalidQRCodeError(context={"reason": "not a table code"}) from e

    def decode_scanned(self, scanned: str) -> ScannedCode:
        """
        Decode whatever a scanner read: a full URL or a bare `data` value.

        A URL's path picks the variant (/check-in → guest, /table-info →
        table). A bare value is told apart by its `type` field.

        Raises:
            InvalidQRCodeError: no `data` parameter, or undecodable data.
        """
        scanned = scanned.strip()
        parts = urlsplit(scanned)
        if not (parts.query or parts.scheme):
            return self._decode_any(scanned)

        values = parse_qs(parts.query).get("data")
        if not values or not values[0]:
            raise InvalidQRCodeError(message="Invalid QR code format", context={"reason": "no data parameter"})

        if parts.path.endswith(TABLE_INFO_PATH):
            return self.decode_table_info(values[0])
        if parts.path.endswith(CHECK_IN_PATH):
            return self.decode(values[0])
        return self._decode_any(values[0])

    def _decode_any(self, encoded: str) -> ScannedCode:
        data = _decode_json_object(encoded)
        try:
            return _scanned_code_adapter.validate_python(data)
        except PydanticValidationError as e:
            raise InvalidQRCodeError(context={"reason": "unexpected field types"}) from e

    # ── Validation ────────────────────────────────────────────────────────

    def validate(
        self,
        payload: CheckInPayload,
        now: Optional[datetime] = None,
    ) -> CheckInValidation:
        """
        Check a decoded guest payload, collecting every problem found.

        Checks:
            1. guestId present
            2. eventId present
            3. checkInCode present
            4. checkInCode matches HMAC(guestId, eventId) (only when 1-3 pass)
            5. no more than 24 hours since `timestamp`

        Returns:
            CheckInValidation; `valid` is True only when no errors were found.

        Raises:
            ConfigurationError: secret missing or placeholder. A server that
                cannot verify codes must not answer "invalid code".
        """
        self._require_secret()
        errors = []

        if not payload.guest_id:
            errors.append(MSG_GUEST_ID_REQUIRED)
        if not payload.event_id:
            errors.append(MSG_EVENT_ID_REQUIRED)
        if not payload.check_in_code:
            errors.append(MSG_CODE_REQUIRED)

        if not errors:
            expected = self.compute_check_in_code(payload.guest_id, payload.event_id)
            if not hmac.compare_digest(expected.encode("utf-8"), payload.check_in_code.encode("utf-8")):
                errors.append(MSG_INVALID_CODE)

        now = now or datetime.now(timezone.utc)
        try:
            issued_at = parse_timestamp(payload.timestamp or "")
        except ValueError:
            errors.append(MSG_BAD_TIMESTAMP)
        else:
            if now - issued_at > CHECK_IN_VALIDITY:
                errors.append(MSG_EXPIRED)

        if errors:
            logger.info(
                "Check-in validation failed for guest %s at event %s: %s",
                payload.guest_id or "<missing>",
                payload.event_id or "<missing>",
                "; ".join(errors),
            )
        return CheckInValidation(valid=not errors, errors=errors)
