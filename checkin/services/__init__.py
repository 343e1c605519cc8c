# Services package init
"""
Wedding Check-In — Services Layer
===================================

What:  Business logic sitting between routes (HTTP) and the QR/image libraries.
How:   Services accept guest-like records and options, apply the check-in
       rules, and return data URLs, HTML, archives or validation results.

Service Inventory:
    - CheckInTokenService: sign, render, decode and validate check-in codes
    - qr_renderer: URL → PNG via qrcode + Pillow
    - label_sheet: printable HTML label sheets via Jinja2
"""
