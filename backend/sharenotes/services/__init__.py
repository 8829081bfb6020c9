# Services package init
"""
ShareNotes Backend — Services Layer
=====================================

What:  Business logic between routes (HTTP) and the database/file store.

Service Inventory:
    - FileService:   File Store: PDF validation, storage, streaming, deletion
    - NoteService:   Note Catalog: create, get, list, delete, download counting
    - RatingService: Rating Ledger: per-rater upsert with average recomputation
    - query:         Filter and pagination helpers for catalog searches

Services can be exercised directly with an AsyncSession; routes only add
HTTP concerns (status codes, headers, streaming).
"""
