"""
Wedding Check-In — Application Package Initializer
====================================================

What: Marks the `checkin` directory as a Python package.
Who:  Used by uvicorn (`checkin.main:app`), pytest, and any process that
      embeds the check-in service directly.

Architecture Note:
    The backend is layered the same way at every entry point:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │    Services (Check-In Token Logic)  │  ← Sign, render, decode, validate
    ├─────────────────────────────────────┤
    │         Schemas (Payloads)          │  ← Pydantic wire contracts
    └─────────────────────────────────────┘

    There is no persistence layer. Everything needed to verify a scanned
    code (guest ID, event ID, timestamp, signature) travels inside the
    code itself; the signing secret is the only server-side state.
"""

__version__ = "1.0.0"
