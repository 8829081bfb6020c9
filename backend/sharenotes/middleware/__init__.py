# Middleware package init
"""
ShareNotes Backend — Middleware Package
========================================

Execution order for an incoming request (main.py adds them in reverse):
    Rate Limit → Request ID → Access Log → GZip → CORS → route

The rate limiter runs before a request ID exists, so 429 bodies carry an
empty request_id.
"""
