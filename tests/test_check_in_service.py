"""
Wedding Check-In — Check-In Token Service Unit Tests
======================================================

What:  Tests for signing, payload encoding/decoding and validation.
How:   Real service with a test secret; URLs are captured from the renderer
       instead of decoding QR images.

What we test:
    ✅ Check-in code is deterministic and bound to (guest, event)
    ✅ generate → decode → validate round trip
    ✅ Tampered / foreign-event codes rejected
    ✅ 24-hour expiry boundary
    ✅ Missing fields reported individually
    ✅ Missing / placeholder secret is a configuration error
    ✅ Unreadable data raises InvalidQRCodeError, not a validation result
"""

import base64
import hashlib
import hmac
import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import pytest

from checkin.exceptions import ConfigurationError, InvalidQRCodeError, ValidationError
from checkin.schemas.check_in import CheckInPayload, TableInfoPayload
from checkin.services.check_in_service import (
    CHECK_IN_CODE_LENGTH,
    CheckInTokenService,
    encode_payload,
    utc_timestamp,
)


def data_param(url: str) -> str:
    return parse_qs(urlsplit(url).query)["data"][0]


def signed_payload(service, guest_id="g1", event_id="evt1", issued_at=None, **overrides):
    fields = {
        "guest_id": guest_id,
        "event_id": event_id,
        "timestamp": utc_timestamp(issued_at),
        "check_in_code": service.compute_check_in_code(guest_id, event_id),
    }
    fields.update(overrides)
    return CheckInPayload(**fields)


class TestCheckInCode:
    """Tests for the HMAC check-in code."""

    def test_code_is_deterministic(self, service):
        """Same guest, event and secret always give the same code."""
        assert service.compute_check_in_code("g1", "evt1") == service.compute_check_in_code("g1", "evt1")

    def test_code_matches_truncated_hmac(self, service):
        expected = hmac.new(b"test-secret-not-real", b"g1-evt1", hashlib.sha256).hexdigest()[:16]
        assert service.compute_check_in_code("g1", "evt1") == expected

    def test_code_is_16_hex_chars(self, service):
        code = service.compute_check_in_code("guest-42", "event-7")
        assert len(code) == CHECK_IN_CODE_LENGTH
        int(code, 16)  # raises if not hex

    def test_code_differs_per_event(self, service):
        assert service.compute_check_in_code("g1", "evt1") != service.compute_check_in_code("g1", "evt2")

    def test_code_differs_per_secret(self, service):
        other = CheckInTokenService(secret="another-secret")
        assert service.compute_check_in_code("g1", "evt1") != other.compute_check_in_code("g1", "evt1")


class TestGenerate:
    """Tests for single guest code generation."""

    @pytest.mark.asyncio
    async def test_generate_returns_png_data_url(self, service):
        image = await service.generate({"id": "g1"}, "evt1")
        assert image.startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_generate_embeds_check_in_url(self, service, captured_urls):
        await service.generate({"id": "g1"}, "evt1", table_number="7")

        assert len(captured_urls) == 1
        assert captured_urls[0].startswith(f"{service.base_url}/check-in?data=")

        payload = service.decode(data_param(captured_urls[0]))
        assert payload.guest_id == "g1"
        assert payload.event_id == "evt1"
        assert payload.table_number == "7"
        assert payload.check_in_code == service.compute_check_in_code("g1", "evt1")

    @pytest.mark.asyncio
    async def test_generate_decode_validate_round_trip(self, service, captured_urls):
        """Freshly generated code validates with the same secret."""
        await service.generate({"id": "g1"}, "evt1")

        payload = service.decode(data_param(captured_urls[0]))
        result = service.validate(payload)

        assert result.valid is True
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_generate_accepts_attribute_style_guest(self, service, captured_urls):
        class Guest:
            id = "g9"
            name = "Dana"

        await service.generate(Guest(), "evt1")
        assert service.decode(data_param(captured_urls[0])).guest_id == "g9"

    @pytest.mark.asyncio
    async def test_table_number_omitted_when_absent(self, service, captured_urls):
        await service.generate({"id": "g1"}, "evt1")

        raw = json.loads(base64.b64decode(data_param(captured_urls[0])))
        assert "tableNumber" not in raw
        assert set(raw) == {"guestId", "eventId", "timestamp", "checkInCode"}

    @pytest.mark.asyncio
    async def test_relative_url_when_base_url_unset(self, captured_urls):
        service = CheckInTokenService(secret="test-secret-not-real")
        await service.generate({"id": "g1"}, "evt1")
        assert captured_urls[0].startswith("/check-in?data=")

    @pytest.mark.asyncio
    async def test_guest_without_id_rejected(self, service):
        with pytest.raises(ValidationError, match="no id"):
            await service.generate({"name": "Nobody"}, "evt1")


class TestConfiguration:
    """Missing or placeholder secrets stop generation before any work."""

    @pytest.mark.asyncio
    async def test_missing_secret_raises(self, unsigned_service):
        with pytest.raises(ConfigurationError):
            await unsigned_service.generate({"id": "g1"}, "evt1")

    @pytest.mark.asyncio
    async def test_placeholder_secret_raises(self):
        service = CheckInTokenService(secret="default-secret")
        with pytest.raises(ConfigurationError):
            await service.generate({"id": "g1"}, "evt1")

    @pytest.mark.asyncio
    async def test_proper_secret_does_not_raise(self, service):
        await service.generate({"id": "g1"}, "evt1")

    @pytest.mark.asyncio
    async def test_missing_secret_raises_before_rendering(self, unsigned_service, captured_urls):
        with pytest.raises(ConfigurationError):
            await unsigned_service.generate({"id": "g1"}, "evt1")
        assert captured_urls == []

    def test_validate_without_secret_raises(self, unsigned_service):
        payload = CheckInPayload(guest_id="g1", event_id="evt1", check_in_code="0" * 16)
        with pytest.raises(ConfigurationError):
            unsigned_service.validate(payload)

    def test_is_configured(self, service, unsigned_service):
        assert service.is_configured is True
        assert unsigned_service.is_configured is False
        assert CheckInTokenService(secret="default-secret").is_configured is False


class TestDecode:
    """Tests for decoding scanned `data` values."""

    def test_round_trip(self, service):
        payload = signed_payload(service, table_number="12")
        assert service.decode(encode_payload(payload)) == payload

    def test_invalid_base64(self, service):
        with pytest.raises(InvalidQRCodeError, match="Invalid QR code data"):
            service.decode("!!!not-base64!!!")

    def test_valid_base64_but_not_json(self, service):
        with pytest.raises(InvalidQRCodeError):
            service.decode(base64.b64encode(b"hello").decode())

    def test_json_that_is_not_an_object(self, service):
        with pytest.raises(InvalidQRCodeError):
            service.decode(base64.b64encode(b'["g1", "evt1"]').decode())

    def test_wrong_field_types(self, service):
        with pytest.raises(InvalidQRCodeError):
            service.decode(base64.b64encode(b'{"guestId": {"nested": true}}').decode())

    def test_missing_fields_still_decode(self, service):
        """A readable code with gaps is a validation problem, not a decode problem."""
        payload = service.decode(base64.b64encode(b'{"eventId": "evt1"}').decode())
        assert payload.guest_id is None
        assert payload.event_id == "evt1"

    def test_tolerates_spaces_and_missing_padding(self, service):
        payload = signed_payload(service, guest_id="g>>>", event_id="e???")
        encoded = encode_payload(payload)
        mangled = encoded.replace("+", " ").rstrip("=")
        assert service.decode(mangled) == payload

    def test_decode_error_is_not_a_validation_result(self, service):
        """Unreadable and invalid are different outcomes for the scanner UI."""
        with pytest.raises(InvalidQRCodeError):
            service.decode("%%%")

    def test_deeply_nested_json(self, service):
        """Nesting deep enough to exhaust the JSON parser is still just unreadable."""
        with pytest.raises(InvalidQRCodeError, match="Invalid QR code data"):
            service.decode(base64.b64encode(b"[" * 5000).decode())

    def test_deeply_nested_json_in_scanned_url(self, service):
        nested = base64.b64encode(b'{"a":' * 5000).decode()
        with pytest.raises(InvalidQRCodeError):
            service.decode_scanned(f"https://wedding.example/table-info?data={nested}")


class TestDecodeScanned:
    """Tests for dispatching whatever a scanner read."""

    def test_full_check_in_url(self, service):
        payload = signed_payload(service)
        code = service.decode_scanned(service.build_check_in_url(payload))
        assert isinstance(code, CheckInPayload)
        assert code == payload

    def test_full_table_info_url(self, service):
        table = TableInfoPayload(table_id="t1", table_name="Rose", event_id="evt1", timestamp=utc_timestamp())
        code = service.decode_scanned(service.build_table_info_url(table))
        assert isinstance(code, TableInfoPayload)
        assert code.table_name == "Rose"

    def test_bare_table_data_is_discriminated_by_type(self, service):
        table = TableInfoPayload(table_id="t1", table_name="Rose", event_id="evt1", timestamp=utc_timestamp())
        assert isinstance(service.decode_scanned(encode_payload(table)), TableInfoPayload)

    def test_bare_guest_data(self, service):
        payload = signed_payload(service)
        assert isinstance(service.decode_scanned(encode_payload(payload)), CheckInPayload)

    def test_url_without_data_parameter(self, service):
        with pytest.raises(InvalidQRCodeError, match="Invalid QR code format"):
            service.decode_scanned("https://wedding.example/check-in?guest=g1")

    def test_check_in_url_carrying_table_data_is_still_a_guest_code(self, service):
        """The /check-in path decides: a table payload there fails validation, not decoding."""
        table = TableInfoPayload(table_id="t1", table_name="Rose", event_id="evt1", timestamp=utc_timestamp())
        url = f"{service.base_url}/check-in?data={encode_payload(table)}"
        code = service.decode_scanned(url)
        assert isinstance(code, CheckInPayload)
        assert service.validate(code).valid is False


class TestValidate:
    """Tests for payload validation."""

    def test_valid_payload(self, service):
        result = service.validate(signed_payload(service))
        assert result.valid is True
        assert result.errors == []

    def test_code_for_different_event_rejected(self, service):
        payload = signed_payload(
            service,
            event_id="evt1",
            check_in_code=service.compute_check_in_code("g1", "evt2"),
        )
        result = service.validate(payload)
        assert result.valid is False
        assert "Invalid check-in code" in result.errors

    def test_code_for_different_guest_rejected(self, service):
        payload = signed_payload(
            service,
            guest_id="g1",
            check_in_code=service.compute_check_in_code("g2", "evt1"),
        )
        assert "Invalid check-in code" in service.validate(payload).errors

    def test_code_from_other_secret_rejected(self, service):
        forged = CheckInTokenService(secret="attacker-guess")
        payload = signed_payload(forged)
        assert "Invalid check-in code" in service.validate(payload).errors

    def test_not_expired_just_under_24_hours(self, service):
        now = datetime.now(timezone.utc)
        payload = signed_payload(service, issued_at=now - timedelta(hours=23, minutes=59))
        result = service.validate(payload, now=now)
        assert result.valid is True

    def test_expired_just_over_24_hours(self, service):
        now = datetime.now(timezone.utc)
        payload = signed_payload(service, issued_at=now - timedelta(hours=24, minutes=1))
        result = service.validate(payload, now=now)
        assert result.valid is False
        assert result.errors == ["QR code has expired"]

    def test_expired_with_wall_clock(self, service):
        payload = signed_payload(service, issued_at=datetime.now(timezone.utc) - timedelta(days=3))
        assert "QR code has expired" in service.validate(payload).errors

    def test_replay_within_window_stays_valid(self, service):
        """No nonce: the same payload validates on every scan inside the window."""
        payload = signed_payload(service)
        assert service.validate(payload).valid is True
        assert service.validate(payload).valid is True

    def test_missing_guest_id(self, service):
        payload = signed_payload(service).model_copy(update={"guest_id": None})
        assert service.validate(payload).errors == ["Guest ID is required"]

    def test_missing_event_id(self, service):
        payload = signed_payload(service).model_copy(update={"event_id": ""})
        assert service.validate(payload).errors == ["Event ID is required"]

    def test_missing_check_in_code(self, service):
        payload = signed_payload(service, check_in_code=None)
        assert service.validate(payload).errors == ["Check-in code is required"]

    def test_all_three_missing(self, service):
        payload = CheckInPayload(timestamp=utc_timestamp())
        result = service.validate(payload)
        assert result.valid is False
        assert result.errors == [
            "Guest ID is required",
            "Event ID is required",
            "Check-in code is required",
        ]

    def test_errors_accumulate(self, service):
        """Bad signature and expiry are both reported."""
        payload = signed_payload(
            service,
            issued_at=datetime.now(timezone.utc) - timedelta(hours=30),
            check_in_code="0123456789abcdef",
        )
        assert service.validate(payload).errors == ["Invalid check-in code", "QR code has expired"]

    def test_unparseable_timestamp(self, service):
        payload = signed_payload(service, timestamp="yesterday-ish")
        assert service.validate(payload).errors == ["QR code timestamp is invalid"]

    def test_missing_timestamp(self, service):
        payload = signed_payload(service, timestamp=None)
        assert service.validate(payload).errors == ["QR code timestamp is invalid"]

    def test_naive_timestamp_treated_as_utc(self, service):
        now = datetime.now(timezone.utc)
        naive = (now - timedelta(hours=1)).replace(tzinfo=None).isoformat()
        payload = signed_payload(service, timestamp=naive)
        assert service.validate(payload, now=now).valid is True

    def test_non_ascii_code_is_rejected_not_crashing(self, service):
        payload = signed_payload(service, check_in_code="ünïcödé")
        assert "Invalid check-in code" in service.validate(payload).errors
