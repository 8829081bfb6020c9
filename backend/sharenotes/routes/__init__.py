# Routes package init
"""
ShareNotes Backend — API Routes Package
=========================================

Route Inventory:
    - notes.py:   /api/notes/...   (catalog, ratings, upload, download, delete)
    - health.py:  GET /health      (service health check)

Routes stay thin: they read the request, call a service, and shape the
response. Business rules live in sharenotes.services.
"""
