"""
ShareNotes Backend — Notes Route Handlers
===========================================

What:  HTTP surface of the note catalog.
How:   Extracts request data, delegates to the services, returns JSON or a
       PDF stream. Errors propagate to the global handlers in main.py.

Route Inventory:
    POST   /api/notes/upload         upload a PDF + metadata      (auth)
    GET    /api/notes                search / paginate the catalog
    GET    /api/notes/mine/stats     caller's upload statistics   (auth)
    GET    /api/notes/{id}           single note
    POST   /api/notes/{id}/rate      add or replace caller's rating (auth)
    GET    /api/notes/{id}/download  stream the PDF, count the download
    DELETE /api/notes/{id}           delete note and its file     (auth)
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from sharenotes.database import get_db_session
from sharenotes.dependencies import CallerIdentity, get_caller_identity
from sharenotes.exceptions import ValidationError
from sharenotes.schemas.note import (
    DeleteResponse,
    ErrorResponse,
    NoteListResponse,
    NoteResponse,
    RatingRequest,
    UploaderStatsResponse,
)
from sharenotes.services.file_service import PDF_MIME_TYPE, file_service
from sharenotes.services.note_service import note_service, require_subject
from sharenotes.services.rating_service import rating_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notes", tags=["Notes"])


def content_disposition(filename: str) -> str:
    """Attachment header; RFC 5987 encoding when the name is not plain ASCII."""
    encoded = quote(filename)
    if encoded != filename:
        return f"attachment; filename*=utf-8''{encoded}"
    return f'attachment; filename="{filename}"'


@router.post(
    "/upload",
    status_code=201,
    response_model=NoteResponse,
    responses={
        400: {"description": "Missing subject, missing or invalid PDF", "model": ErrorResponse},
        401: {"description": "Authentication required", "model": ErrorResponse},
    },
    summary="Upload a PDF note",
)
async def upload_note(
    pdf: Optional[UploadFile] = File(default=None, description="The note, as a PDF"),
    subject: Optional[str] = Form(default=None),
    year: Optional[str] = Form(default=None),
    section: Optional[str] = Form(default=None),
    faculty: Optional[str] = Form(default=None),
    is_paid: Optional[str] = Form(default=None),
    price: Optional[str] = Form(default=None),
    caller: CallerIdentity = Depends(get_caller_identity),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    """
    Store the PDF, then create the catalog record that points at it.

    Metadata is validated before anything touches the disk. If the record
    cannot be created, the just-stored file is removed again.
    """
    require_subject(subject)
    if pdf is None:
        raise ValidationError(message="A PDF file is required", field="pdf")

    try:
        content = await pdf.read()
        logger.info(
            "Received upload: filename=%s, size=%d bytes, uploader=%s",
            pdf.filename or "unknown",
            len(content),
            caller.user_id,
        )
        file_path = await file_service.validate_and_store(
            filename=pdf.filename or "",
            content=content,
            content_length=pdf.size,
        )
    finally:
        await pdf.close()

    try:
        return await note_service.create_note(
            db=db,
            subject=subject,
            file_path=file_path,
            year=year,
            section=section,
            faculty=faculty,
            is_paid=is_paid,
            price=price,
            uploader_id=caller.user_id,
        )
    except Exception:
        await file_service.cleanup_file(file_path)
        raise


@router.get(
    "",
    response_model=NoteListResponse,
    summary="Search and paginate the catalog",
    description=(
        "Case-insensitive substring filters on subject and faculty, a free-text "
        "`q` matched against either, and an exact `uploader` filter. Results are "
        "ordered by average rating, then newest first."
    ),
)
async def list_notes(
    response: Response,
    q: Optional[str] = Query(default=None, description="Matches subject or faculty"),
    subject: Optional[str] = Query(default=None),
    faculty: Optional[str] = Query(default=None),
    uploader: Optional[str] = Query(default=None, description="Uploader identity"),
    page: Optional[str] = Query(default=None, description="1-based page number (default 1)"),
    limit: Optional[str] = Query(default=None, description="Page size (default 12)"),
    db: AsyncSession = Depends(get_db_session),
) -> NoteListResponse:
    # page/limit arrive as strings so bad values fall back to defaults instead of 422
    result = await note_service.list_notes(
        db=db,
        query=q,
        subject=subject,
        faculty=faculty,
        uploader_id=uploader,
        page=page,
        limit=limit,
    )
    response.headers["X-Total-Count"] = str(result.total)
    return result


@router.get(
    "/mine/stats",
    response_model=UploaderStatsResponse,
    responses={401: {"description": "Authentication required", "model": ErrorResponse}},
    summary="Statistics for the caller's uploads",
)
async def my_stats(
    caller: CallerIdentity = Depends(get_caller_identity),
    db: AsyncSession = Depends(get_db_session),
) -> UploaderStatsResponse:
    return await note_service.uploader_stats(db=db, uploader_id=caller.user_id)


# note_id is taken as a plain string: NoteService answers 404 for one that is
# not a UUID, the same as for an id that matches no note
@router.get(
    "/{note_id}",
    response_model=NoteResponse,
    responses={404: {"description": "Note not found", "model": ErrorResponse}},
    summary="Get a single note",
)
async def get_note(
    note_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    return await note_service.get_note(db=db, note_id=note_id)


@router.post(
    "/{note_id}/rate",
    response_model=NoteResponse,
    responses={
        400: {"description": "Rating outside 1-5", "model": ErrorResponse},
        401: {"description": "Authentication required", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
        409: {"description": "Concurrent update, retry", "model": ErrorResponse},
    },
    summary="Rate a note (one rating per user, resubmitting replaces it)",
)
async def rate_note(
    note_id: str,
    body: RatingRequest,
    caller: CallerIdentity = Depends(get_caller_identity),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    return await rating_service.upsert_rating(
        db=db,
        note_id=note_id,
        rater_id=caller.user_id,
        value=body.value,
        comment=body.comment,
    )


@router.get(
    "/{note_id}/download",
    response_class=StreamingResponse,
    responses={
        200: {"content": {PDF_MIME_TYPE: {}}, "description": "The note's PDF"},
        404: {"description": "Note or file not found", "model": ErrorResponse},
    },
    summary="Download a note's PDF",
)
async def download_note(
    note_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> StreamingResponse:
    """
    Stream the PDF as an attachment.

    The download is counted before the first byte is sent. A note whose
    file has disappeared answers 404 with error code `file_not_found`.
    """
    ticket = await note_service.prepare_download(db=db, note_id=note_id)
    return StreamingResponse(
        file_service.stream_file(ticket.file_path),
        media_type=PDF_MIME_TYPE,
        headers={
            "Content-Disposition": content_disposition(ticket.filename),
            "Cache-Control": "no-store",
        },
    )


@router.delete(
    "/{note_id}",
    response_model=DeleteResponse,
    responses={
        401: {"description": "Authentication required", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
    },
    summary="Delete a note and its file",
)
async def delete_note(
    note_id: str,
    caller: CallerIdentity = Depends(get_caller_identity),
    db: AsyncSession = Depends(get_db_session),
) -> DeleteResponse:
    logger.info("Delete requested for note %s by %s", note_id, caller.user_id)
    await note_service.delete_note(db=db, note_id=note_id)
    return DeleteResponse()
