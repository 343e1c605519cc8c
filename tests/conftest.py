"""
Wedding Check-In — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixtures:
    ├── service:          CheckInTokenService with a test secret and base URL
    ├── unsigned_service: CheckInTokenService with no secret configured
    ├── guests:           Three well-formed guest records
    ├── captured_urls:    Records every URL handed to the QR renderer
    ├── test_settings:    Settings for the HTTP app
    ├── test_app:         FastAPI app built from test_settings
    └── test_client:      HTTPX AsyncClient bound to test_app
"""

import os
from typing import List
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Keep a developer's real environment out of the app built at import time
os.environ.setdefault("QR_CODE_SECRET", "test-secret-not-real")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from checkin.config import Settings  # noqa: E402
from checkin.services import check_in_service as check_in_module  # noqa: E402
from checkin.services.check_in_service import CheckInTokenService  # noqa: E402

TEST_SECRET = "test-secret-not-real"
TEST_BASE_URL = "https://wedding.example"


@pytest.fixture
def service():
    return CheckInTokenService(base_url=TEST_BASE_URL, secret=TEST_SECRET)


@pytest.fixture
def unsigned_service():
    return CheckInTokenService(base_url=TEST_BASE_URL, secret=None)


@pytest.fixture
def guests():
    """Guest-like records in the shape the web app posts them."""
    return [
        {"id": "g1", "name": "Anna Schmidt", "tableNumber": "1"},
        {"id": "g2", "name": "Ben Okafor", "tableNumber": "4"},
        {"id": "g3", "name": "Chiara Rossi"},
    ]


@pytest.fixture
def captured_urls():
    """
    Collects the URL behind every rendered image.

    The real renderer still runs, so images stay valid PNGs; the list lets
    tests read back the payload without a QR decoder.
    """
    urls: List[str] = []
    real_render = check_in_module.render_qr_png

    def capture(url, options):
        urls.append(url)
        return real_render(url, options)

    with patch.object(check_in_module, "render_qr_png", side_effect=capture):
        yield urls


@pytest.fixture
def test_settings():
    return Settings(
        qr_code_secret=TEST_SECRET,
        app_base_url=TEST_BASE_URL,
        log_level="WARNING",
    )


@pytest.fixture
def test_app(test_settings):
    from checkin.main import create_app

    return create_app(test_settings)


@pytest_asyncio.fixture
async def test_client(test_app):
    """
    HTTPX AsyncClient talking to a freshly built app.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
