"""
ShareNotes Backend — Note SQLAlchemy Model
============================================

What:  ORM model representing the `notes` table.
How:   Inherits from the shared DeclarativeBase; Alembic reads this for migrations.
Who:   Written only by NoteService and RatingService; read by every route.

Table Design:
    - UUID primary key generated in Python, immutable after insert
    - file_path: relative path from STORAGE_ROOT to the uploaded PDF
    - ratings: embedded JSON list, one entry per rater, in submission order
    - avg_rating: cached mean of ratings[].value, written in the same
      statement as `ratings` so the two never disagree
    - download_count: only ever changed by `download_count + 1` updates
    - version: compare-and-swap token for the read-recompute-write rating cycle

    Index (avg_rating DESC, created_at DESC) matches the catalog's only sort order.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Uuid,
    false,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from sharenotes.database import Base

# JSONB on PostgreSQL, plain JSON (text) everywhere else
RatingsType = JSON().with_variant(JSONB(), "postgresql")


class Note(Base):
    """
    A catalog record describing one uploaded study document.

    Lifecycle:
        1. Created by the upload workflow once the PDF is on disk
        2. Mutated by rating submissions (ratings + avg_rating + version)
           and by downloads (download_count)
        3. Deleted explicitly; the PDF is removed best-effort afterwards

    Rating entry shape (stored in `ratings`):
        {"rater_id": "<caller id>", "value": 1-5, "comment": "<text or null>"}
    """

    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        comment="Unique identifier, immutable",
    )

    # ── Descriptive metadata ──────────────────────────────────────────────
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    year: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    section: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    faculty: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Format: YYYY/MM/DD/<uuid>.pdf, relative to STORAGE_ROOT
    file_path: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Relative path from storage root to the uploaded PDF",
    )

    # ── Pricing (metadata only, no payment gate) ──────────────────────────
    is_paid: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    price: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, server_default=text("0")
    )

    # Opaque caller identity from the auth service; absent for legacy rows
    uploader_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    # ── Ratings ───────────────────────────────────────────────────────────
    ratings: Mapped[List[Dict[str, Any]]] = mapped_column(
        RatingsType,
        nullable=False,
        default=list,
        comment="Embedded rating entries, at most one per rater_id",
    )
    avg_rating: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        server_default=text("0"),
        comment="Mean of ratings[].value, 0 when there are no ratings",
    )
    version: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    download_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
        comment="When this note was uploaded (UTC)",
    )

    def __repr__(self) -> str:
        return (
            f"<Note(id={self.id}, subject='{self.subject}', "
            f"avg_rating={self.avg_rating}, downloads={self.download_count})>"
        )


# Matches the catalog sort order
Index("idx_notes_rating_created", Note.avg_rating.desc(), Note.created_at.desc())
