"""
Wedding Check-In — FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() builds the check-in service from
       settings, registers middleware, exception handlers and routes.
Who:   uvicorn (`uvicorn checkin.main:app`) and the test suite.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────────┐ ┌──────────┐ ┌─────────────────┐  │
    │  │  Rate Limit  │→│ Req ID   │→│  Logging        │  │
    │  └──────────────┘ └──────────┘ └─────────────────┘  │
    │                                                     │
    │  Routes:                                            │
    │  ┌──────────────┐ ┌──────────────┐ ┌─────────────┐  │
    │  │ POST scan    │ │ POST qr-codes│ │ GET /health │  │
    │  └──────────────┘ └──────────────┘ └─────────────┘  │
    │                                                     │
    │  app.state.check_in_service  (built once)           │
    └─────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from checkin import __version__
from checkin.config import Settings, settings as default_settings
from checkin.exceptions import (
    CheckInServiceError,
    ConfigurationError,
    InvalidQRCodeError,
    QRGenerationError,
    ValidationError,
)
from checkin.middleware.logging import RequestLoggingMiddleware
from checkin.middleware.rate_limit import RateLimitMiddleware
from checkin.middleware.request_id import RequestIDMiddleware, request_id_var
from checkin.routes import check_in, health, qr_codes
from checkin.services.check_in_service import CheckInTokenService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str) -> None:
    """
    Configure logging for the entire application.

    Format: 2026-10-17T12:00:00 [INFO] checkin.access: POST /api/check-in/scan 200 2.1ms [1a2b3c4d] from 10.0.0.5
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    # Pillow logs every PNG chunk at DEBUG
    logging.getLogger("PIL").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and a consistent JSON body.

        InvalidQRCodeError      → 400 invalid_qr_code
        ValidationError         → 400 validation_error
        ConfigurationError      → 500 configuration_error
        QRGenerationError       → 500 qr_generation_error
        CheckInServiceError     → 500 server_error
        Exception (fallback)    → 500 internal_server_error

    5xx responses never include exception context; it is logged instead.
    """

    @app.exception_handler(InvalidQRCodeError)
    async def handle_invalid_qr_code(request: Request, exc: InvalidQRCodeError):
        """The scanned text is not a code we can read."""
        request.state.scan_outcome = "unreadable"
        rid = request_id_var.get("")
        logger.warning("[%s] Unreadable QR code: %s | %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=400,
            content={
                "error": "invalid_qr_code",
                "message": exc.message,
                "request_id": rid,
            },
        )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        rid = request_id_var.get("")
        logger.warning("[%s] Validation error: %s", rid, exc.message)
        return JSONResponse(
            status_code=400,
            content={
                "error": "validation_error",
                "message": exc.message,
                "details": exc.context,
                "request_id": rid,
            },
        )

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        """Signing secret missing or placeholder. Retrying will not help."""
        rid = request_id_var.get("")
        logger.error("[%s] Configuration error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={
                "error": "configuration_error",
                "message": "Check-in codes are not available: the server's signing key is not configured.",
                "request_id": rid,
            },
        )

    @app.exception_handler(QRGenerationError)
    async def handle_generation_error(request: Request, exc: QRGenerationError):
        rid = request_id_var.get("")
        logger.error("[%s] QR generation error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={
                "error": "qr_generation_error",
                "message": exc.message,
                "request_id": rid,
            },
        )

    @app.exception_handler(CheckInServiceError)
    async def handle_service_error(request: Request, exc: CheckInServiceError):
        rid = request_id_var.get("")
        logger.error("[%s] Service error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "message": "An internal error occurred. Please try again later.",
                "request_id": rid,
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all: stack trace goes to the log, the client gets a request ID."""
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings: Settings override (tests); defaults to the environment.

    The CheckInTokenService is constructed here, once, with the base URL and
    secret passed in explicitly, and stored on app.state for the
    `get_check_in_service` dependency.
    """
    cfg = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging(cfg.log_level)
        logger.info("Wedding Check-In backend starting up (v%s)", __version__)

        # Not fatal: /health reports the problem and generation fails with
        # ConfigurationError until the secret is set.
        try:
            cfg.validate_required_for_production()
        except ValueError as e:
            logger.error("Configuration error: %s", str(e))
            logger.error("Guest check-in codes are disabled until this is fixed.")

        logger.info("Server ready at http://%s:%d", cfg.backend_host, cfg.backend_port)
        yield
        logger.info("Shutdown complete.")

    app = FastAPI(
        title="Wedding Check-In API",
        description=(
            "Signed guest check-in QR codes, table information codes and "
            "printable label sheets for wedding events."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.check_in_service = CheckInTokenService(
        base_url=cfg.app_base_url,
        secret=cfg.qr_code_secret,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added = first to execute:
    # RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After", "Content-Disposition"],
    )
    # Label sheets are mostly base64 text and compress well
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=cfg.rate_limit_requests,
        window_seconds=cfg.rate_limit_window,
    )

    register_exception_handlers(app)

    app.include_router(check_in.router)
    app.include_router(qr_codes.router)
    app.include_router(health.router)

    return app


# uvicorn expects `checkin.main:app`
app = create_app()
