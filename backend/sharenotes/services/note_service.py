"""
ShareNotes Backend — Note Service (Catalog)
=============================================

What:  The Note Catalog: create, read, list, delete notes and count downloads.
How:   Async SQLAlchemy statements against the `notes` table; FileService for
       the PDF that belongs to each row.
Who:   Called by route handlers.

Write paths and their atomicity:
    create_note         INSERT, committed before returning
    increment_download  UPDATE notes SET download_count = download_count + 1
    delete_note         DELETE, committed, then best-effort file removal

Download flow (prepare_download):
    ┌──────────┐    ┌───────────────┐    ┌──────────────┐    ┌──────────┐
    │ Get note │───▶│ File exists?  │───▶│ +1 download  │───▶│  Stream  │
    │ (404)    │    │ (404 file)    │    │ (committed)  │    │ (route)  │
    └──────────┘    └───────────────┘    └──────────────┘    └──────────┘

Rows are always re-read from the database; nothing is cached between requests.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sharenotes.exceptions import (
    DatabaseError,
    NoteFileMissingError,
    NotFoundError,
    ValidationError,
)
from sharenotes.models.note import Note
from sharenotes.schemas.note import (
    NoteListResponse,
    NoteResponse,
    UploaderStatsResponse,
)
from sharenotes.services.file_service import file_service
from sharenotes.services.query import build_filters, resolve_page

logger = logging.getLogger(__name__)

TRUTHY_STRINGS = {"true", "1", "yes", "on"}


def coerce_is_paid(value: Any) -> bool:
    """Accepts booleans and the usual truthy strings a form submits."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    return False


def coerce_price(value: Any) -> float:
    """Non-negative finite float; anything else becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(price) or price < 0:
        return 0.0
    return price


def require_subject(subject: Optional[str]) -> str:
    """Trimmed subject, or ValidationError when missing or blank."""
    cleaned = (subject or "").strip()
    if not cleaned:
        raise ValidationError(message="Subject is required", field="subject")
    return cleaned


def parse_note_id(note_id: Any) -> UUID:
    """
    Note ids arrive as path segments; one that is not a UUID names no note.

    Raises:
        NotFoundError: `note_id` is not a valid UUID
    """
    if isinstance(note_id, UUID):
        return note_id
    try:
        return UUID(str(note_id))
    except ValueError:
        raise NotFoundError(resource="note", resource_id=str(note_id))


def download_filename(subject: str) -> str:
    """'Physics 101' → 'Physics_101.pdf', 'Maths/Stats' → 'Maths_Stats.pdf'."""
    return re.sub(r"[\s/\\]+", "_", subject.strip()) + ".pdf"


@dataclass(frozen=True)
class DownloadTicket:
    """What the route needs to stream a note after the counter was bumped."""
    note: NoteResponse
    file_path: str
    filename: str


class NoteService:
    """
    Business logic for note records.

    Error Handling Strategy:
        Application exceptions propagate unchanged. SQLAlchemy failures are
        wrapped in DatabaseError with the original type in the context.
    """

    async def _load(self, db: AsyncSession, note_id: UUID) -> Note:
        """Fetch a fresh copy of the row or raise NotFoundError."""
        result = await db.execute(
            select(Note)
            .where(Note.id == note_id)
            .execution_options(populate_existing=True)
        )
        note = result.scalar_one_or_none()
        if note is None:
            raise NotFoundError(resource="note", resource_id=str(note_id))
        return note

    async def create_note(
        self,
        db: AsyncSession,
        subject: Optional[str],
        file_path: Optional[str],
        year: Optional[str] = None,
        section: Optional[str] = None,
        faculty: Optional[str] = None,
        is_paid: Any = False,
        price: Any = 0,
        uploader_id: Optional[str] = None,
    ) -> NoteResponse:
        """
        Insert a new note for a file that is already stored.

        Raises:
            ValidationError: subject or file_path missing/blank (nothing written)
            DatabaseError:   insert or commit failed
        """
        subject = require_subject(subject)
        file_path = (file_path or "").strip()
        if not file_path:
            raise ValidationError(message="A PDF file is required", field="pdf")

        note = Note(
            subject=subject,
            year=year or None,
            section=section or None,
            faculty=faculty or None,
            file_path=file_path,
            is_paid=coerce_is_paid(is_paid),
            price=coerce_price(price),
            uploader_id=uploader_id,
            ratings=[],
            avg_rating=0.0,
            download_count=0,
        )
        try:
            db.add(note)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error creating note: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not save the note. Please try again.",
                context={"error_type": type(e).__name__},
            )

        logger.info("Note created: %s (subject=%r, uploader=%s)", note.id, subject, uploader_id)
        return NoteResponse.from_note(note)

    async def get_note(self, db: AsyncSession, note_id: Any) -> NoteResponse:
        """
        Retrieve a single note by ID.

        Raises:
            NotFoundError: no note with that id (→ 404)
            DatabaseError: query failed (→ 500)
        """
        note_id = parse_note_id(note_id)
        try:
            note = await self._load(db, note_id)
        except SQLAlchemyError as e:
            logger.error("Database error fetching note %s: %s", note_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the note. Please try again.",
                context={"note_id": str(note_id)},
            )
        return NoteResponse.from_note(note)

    async def increment_download(self, db: AsyncSession, note_id: Any) -> NoteResponse:
        """
        Add one to download_count in a single UPDATE statement.

        Concurrent callers each add exactly one; there is no read-modify-write
        in Python.
        """
        note_id = parse_note_id(note_id)
        try:
            result = await db.execute(
                update(Note)
                .where(Note.id == note_id)
                .values(download_count=Note.download_count + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await db.rollback()
                raise NotFoundError(resource="note", resource_id=str(note_id))
            await db.commit()
            note = await self._load(db, note_id)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error counting download for %s: %s", note_id, str(e))
            raise DatabaseError(
                message="Could not record the download. Please try again.",
                context={"note_id": str(note_id)},
            )
        return NoteResponse.from_note(note)

    async def prepare_download(self, db: AsyncSession, note_id: Any) -> DownloadTicket:
        """
        Everything that must happen before bytes are streamed.

        Raises:
            NotFoundError:        the note does not exist
            NoteFileMissingError: the note exists but its PDF is gone
        """
        note_id = parse_note_id(note_id)
        try:
            note = await self._load(db, note_id)
        except SQLAlchemyError as e:
            logger.error("Database error preparing download for %s: %s", note_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the note. Please try again.",
                context={"note_id": str(note_id)},
            )
        stored = note.file_path

        if not await file_service.exists(stored):
            logger.warning("Note %s references missing file %s", note_id, stored)
            raise NoteFileMissingError(note_id=str(note_id))

        # Counted before streaming starts; an aborted transfer still counts
        updated = await self.increment_download(db, note_id)
        return DownloadTicket(
            note=updated,
            file_path=stored,
            filename=download_filename(note.subject),
        )

    async def _file_path(self, db: AsyncSession, note_id: UUID) -> str:
        result = await db.execute(select(Note.file_path).where(Note.id == note_id))
        stored = result.scalar_one_or_none()
        if stored is None:
            raise NotFoundError(resource="note", resource_id=str(note_id))
        return stored

    async def delete_note(self, db: AsyncSession, note_id: Any) -> None:
        """
        Delete the note row, then remove its PDF.

        The row deletion is authoritative. A failure to remove the file is
        logged by FileService and does not fail the operation.
        """
        note_id = parse_note_id(note_id)
        try:
            stored = await self._file_path(db, note_id)
            result = await db.execute(
                delete(Note)
                .where(Note.id == note_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await db.rollback()
                raise NotFoundError(resource="note", resource_id=str(note_id))
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error deleting note %s: %s", note_id, str(e))
            raise DatabaseError(
                message="Could not delete the note. Please try again.",
                context={"note_id": str(note_id)},
            )

        logger.info("Note deleted: %s", note_id)
        removed = await file_service.cleanup_file(stored)
        if not removed:
            logger.warning("Note %s deleted but file %s was left behind", note_id, stored)

    async def list_notes(
        self,
        db: AsyncSession,
        query: Optional[str] = None,
        subject: Optional[str] = None,
        faculty: Optional[str] = None,
        uploader_id: Optional[str] = None,
        page: Any = 1,
        limit: Any = None,
    ) -> NoteListResponse:
        """
        Filtered, sorted, paginated view of the catalog.

        Order: avg_rating DESC, created_at DESC, id (total order).
        `total` counts every match, not just the returned page.
        """
        window = resolve_page(page, limit)
        clauses = build_filters(
            query=query, subject=subject, faculty=faculty, uploader_id=uploader_id
        )

        try:
            count_result = await db.execute(
                select(func.count()).select_from(Note).where(*clauses)
            )
            total = count_result.scalar() or 0

            result = await db.execute(
                select(Note)
                .where(*clauses)
                .order_by(Note.avg_rating.desc(), Note.created_at.desc(), Note.id)
                .offset(window.offset)
                .limit(window.limit)
                .execution_options(populate_existing=True)
            )
            notes = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error listing notes: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve notes. Please try again.",
                context={"error_type": type(e).__name__},
            )

        return NoteListResponse(
            items=[NoteResponse.from_note(note) for note in notes],
            total=total,
            page=window.page,
            limit=window.limit,
            pages=window.page_count(total),
        )

    async def uploader_stats(self, db: AsyncSession, uploader_id: str) -> UploaderStatsResponse:
        """Totals for one uploader's notes, as shown on the profile page."""
        try:
            totals = await db.execute(
                select(
                    func.count(Note.id),
                    func.coalesce(func.sum(Note.download_count), 0),
                    func.coalesce(func.avg(Note.avg_rating), 0.0),
                ).where(Note.uploader_id == uploader_id)
            )
            uploads, downloads, average = totals.one()

            subjects_result = await db.execute(
                select(Note.subject)
                .where(Note.uploader_id == uploader_id)
                .distinct()
                .order_by(Note.subject)
            )
            subjects = list(subjects_result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error computing stats for %s: %s", uploader_id, str(e))
            raise DatabaseError(
                message="Could not compute statistics. Please try again.",
                context={"uploader_id": uploader_id},
            )

        return UploaderStatsResponse(
            uploader_id=uploader_id,
            total_uploads=uploads,
            subjects=subjects,
            total_downloads=int(downloads),
            average_rating=float(average),
        )


# NoteService is stateless; one instance serves every request
note_service = NoteService()
