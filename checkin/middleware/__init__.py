# Middleware package init
"""
Wedding Check-In — Middleware Package
=======================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Rate Limit FIRST: Reject code-guessing floods before any HMAC work
    2. Request ID: Generate correlation ID for logging and tracing
    3. Logging: Log request details with the generated request ID
    4. GZip: Compresses label sheets and bulk responses
    5. CORS: Applied by FastAPI's CORSMiddleware (handles preflight)
"""
