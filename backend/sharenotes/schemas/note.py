"""
ShareNotes Backend — Pydantic Request/Response Schemas
=======================================================

What:  Pydantic models defining the API contract between frontend and backend.
How:   FastAPI uses these models to validate request bodies, serialize responses,
       and generate the OpenAPI documentation.

Schemas are kept separate from the SQLAlchemy model: `file_path` and
`version` are storage details and are never exposed; clients get a
`download_url` instead.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from sharenotes.models.note import Note


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class RatingEntry(BaseModel):
    """One caller's rating of a note."""
    rater_id: str = Field(description="Caller identity that submitted the rating")
    value: int = Field(description="Star rating, 1-5")
    comment: Optional[str] = Field(default=None, description="Optional review text")


class NoteResponse(BaseModel):
    """
    What:  Full representation of a catalog note.
    Who:   Returned by every endpoint that reads or mutates a single note.

    avg_rating is returned at full precision; rounding for display is the
    client's job.
    """
    id: uuid.UUID = Field(description="Unique note identifier (UUID)")
    subject: str
    year: Optional[str] = None
    section: Optional[str] = None
    faculty: Optional[str] = None
    is_paid: bool = Field(description="Whether the uploader marked this note as paid")
    price: float = Field(description="Listed price; meaningful only when is_paid is true")
    uploader_id: Optional[str] = Field(default=None, description="Uploader's caller identity")
    ratings: List[RatingEntry] = Field(default_factory=list)
    avg_rating: float = Field(description="Mean rating, 0 when unrated")
    download_count: int = Field(description="Number of successful downloads")
    download_url: str = Field(description="API path that streams the PDF")
    created_at: datetime = Field(description="When the note was uploaded (UTC ISO 8601)")

    @classmethod
    def from_note(cls, note: Note) -> "NoteResponse":
        return cls(
            id=note.id,
            subject=note.subject,
            year=note.year,
            section=note.section,
            faculty=note.faculty,
            is_paid=note.is_paid,
            price=note.price,
            uploader_id=note.uploader_id,
            ratings=[RatingEntry(**entry) for entry in (note.ratings or [])],
            avg_rating=note.avg_rating,
            download_count=note.download_count,
            download_url=f"/api/notes/{note.id}/download",
            created_at=note.created_at,
        )


class NoteListResponse(BaseModel):
    """
    What:  Paginated response wrapper for the catalog listing.
    Who:   Returned by GET /api/notes.

    Offset pagination: `total` counts every matching note, so clients can
    render "page 2 of 7" without a second request.
    """
    items: List[NoteResponse] = Field(description="Notes on the requested page")
    total: int = Field(description="Total number of notes matching the filters")
    page: int = Field(description="Page number that was served (1-based)")
    limit: int = Field(description="Page size that was applied")
    pages: int = Field(description="Number of pages available at this page size")


class UploaderStatsResponse(BaseModel):
    """Aggregate figures for one uploader's notes (profile page)."""
    uploader_id: str
    total_uploads: int
    subjects: List[str] = Field(description="Distinct subjects, alphabetical")
    total_downloads: int
    average_rating: float = Field(description="Mean of the uploader's per-note averages")


class DeleteResponse(BaseModel):
    message: str = "Note deleted"


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class RatingRequest(BaseModel):
    """
    Body of POST /api/notes/{id}/rate.

    The 1-5 range is enforced by RatingService so direct service callers get
    the same rule as HTTP clients. Strict so JSON `true` or `4.0` is not
    coerced into a star count.
    """
    value: int = Field(strict=True, description="Star rating, 1-5")
    comment: Optional[str] = Field(default=None, max_length=2000, description="Optional review")


# ══════════════════════════════════════════════════════════════════════════
# Error & Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "file_not_found",
            "message": "The file for note '...' is no longer available",
            "details": {"resource": "file"},
            "request_id": "1a2b3c4d"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health check response showing service and dependency status."""
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    storage: str = Field(description="Storage root: writable, unavailable")
    uptime_seconds: float = Field(description="Seconds since service started")
