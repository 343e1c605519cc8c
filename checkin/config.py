"""
Wedding Check-In — Application Configuration
==============================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or a .env file),
       validates types/ranges, and provides a module-level `settings` object.
Who:   Read by the application factory, which injects the values the
       check-in service needs (base URL, signing secret) explicitly.
When:  Loaded once at module import time.

Required in production:
    QR_CODE_SECRET   HMAC key for check-in codes. Must not be empty and must
                     not be the placeholder "default-secret".
    APP_BASE_URL     Public URL of the web app, prefixed to every embedded
                     check-in / table-info link. Defaults to "" (relative).
"""

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

# Shipped in example env files; signing with it would make every code forgeable.
PLACEHOLDER_SECRET = "default-secret"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes are grouped by concern for readability.
    """

    # ── Check-In Signing ──────────────────────────────────────────────────
    # What: Shared secret for HMAC-SHA256 check-in codes
    # Rotating it invalidates every printed label, so treat it as long-lived
    qr_code_secret: str = Field(
        default="",
        description="HMAC secret used to sign guest check-in codes",
    )

    # What: Public base URL of the web app that hosts /check-in and /table-info
    # Format: https://example.com (no trailing slash; one is stripped if present)
    app_base_url: str = Field(
        default="",
        description="Base URL embedded in generated QR codes",
    )

    @field_validator("app_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    # ── CORS ──────────────────────────────────────────────────────────────
    # Format: Comma-separated URLs (parsed by property below)
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # What: Per-IP sliding window rate limit
    # Scan endpoints are the target here: a 64-bit code is only hard to guess
    # while guessing stays slow.
    rate_limit_requests: int = Field(default=300, ge=10, le=10000)
    rate_limit_window: int = Field(default=3600, ge=60, le=86400)  # seconds

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,  # QR_CODE_SECRET and qr_code_secret both work
        "extra": "ignore",
    }

    @property
    def signing_configured(self) -> bool:
        return bool(self.qr_code_secret) and self.qr_code_secret != PLACEHOLDER_SECRET

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that critical settings are configured.
        When:  Called during app startup (lifespan).
        How:   Collects every problem and raises one ValueError listing them.
        """
        errors = []
        if not self.qr_code_secret:
            errors.append(
                "QR_CODE_SECRET is not set. "
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )
        elif self.qr_code_secret == PLACEHOLDER_SECRET:
            errors.append(
                f"QR_CODE_SECRET is still the placeholder '{PLACEHOLDER_SECRET}'. "
                "Set it to a long random value."
            )
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


# Module-level defaults; the app factory accepts an override for tests.
settings = Settings()
