# Routes package init
"""
Wedding Check-In — API Routes Package
=======================================

Route Inventory:
    - check_in.py:  POST /api/check-in/scan                         (decode + validate a scan)
    - qr_codes.py:  POST /api/events/{event_id}/qr-codes/guest      (one guest code)
                    POST /api/events/{event_id}/qr-codes/bulk       (many guest codes)
                    POST /api/events/{event_id}/qr-codes/labels     (printable HTML sheet)
                    POST /api/events/{event_id}/qr-codes/archive    (zip of PNGs)
                    POST /api/events/{event_id}/tables/{table_id}/qr-code
    - health.py:    GET  /health

Routes stay THIN: pull data out of the request, call CheckInTokenService,
shape the response. Guest data arrives in the request body; this service
never looks guests up itself.
"""
