"""
ShareNotes Backend — Application Package Initializer
====================================================

What: Marks the `sharenotes` directory as a Python package.
Who:  Imported by uvicorn (`sharenotes.main:app`), Alembic, and pytest.

Architecture Note:
    The backend is layered the same way for every resource:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Catalog, Ratings, Files)│  ← Business rules, atomic updates
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Routes translate requests into service calls; services own every write
    to a Note row and the file stored alongside it.
"""

__version__ = "1.0.0"
