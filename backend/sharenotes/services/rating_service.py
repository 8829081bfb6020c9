"""
ShareNotes Backend — Rating Service (Rating Ledger)
=====================================================

What:  Per-note, per-rater rating upsert with average recomputation.
How:   Optimistic concurrency on Note.version:

           read note (fresh)  →  merge rating  →  recompute mean
                 ▲                                      │
                 │   0 rows updated (someone else won)  ▼
                 └──── UPDATE ... WHERE id = :id AND version = :seen

       `ratings`, `avg_rating` and `version` change in one UPDATE, so the
       average can never disagree with the list it was computed from.
       Tenacity retries the cycle a bounded number of times when another
       writer got in first.
Who:   Called by POST /api/notes/{id}/rate.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from sharenotes.config import settings
from sharenotes.exceptions import (
    ConcurrentUpdateError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from sharenotes.models.note import Note
from sharenotes.schemas.note import NoteResponse
from sharenotes.services.note_service import parse_note_id

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class _VersionConflict(Exception):
    """Internal signal: the compare-and-swap matched no row."""


def validate_rating_value(value: Any) -> int:
    """
    Ratings are whole stars from 1 to 5.

    Raises:
        ValidationError for bools, non-integers and out-of-range numbers.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            message="Rating value must be an integer between 1 and 5",
            field="value",
            context={"received": repr(value)},
        )
    if not MIN_RATING <= value <= MAX_RATING:
        raise ValidationError(
            message="Rating value must be an integer between 1 and 5",
            field="value",
            context={"received": value},
        )
    return value


def merge_rating(
    ratings: List[Dict[str, Any]],
    rater_id: str,
    value: int,
    comment: Optional[str],
) -> List[Dict[str, Any]]:
    """
    Return a new ratings list with the rater's entry replaced in place or appended.

    The input list is not modified.
    """
    entry = {"rater_id": rater_id, "value": value, "comment": comment}
    merged = [dict(existing) for existing in ratings]
    for index, existing in enumerate(merged):
        if existing.get("rater_id") == rater_id:
            merged[index] = entry
            return merged
    merged.append(entry)
    return merged


def average_rating(ratings: List[Dict[str, Any]]) -> float:
    """Arithmetic mean of the values at full precision, 0.0 when empty."""
    if not ratings:
        return 0.0
    return sum(entry["value"] for entry in ratings) / len(ratings)


class RatingService:
    """Business logic for the ratings embedded in each note."""

    async def _attempt(
        self,
        db: AsyncSession,
        note_id: UUID,
        rater_id: str,
        value: int,
        comment: Optional[str],
    ) -> None:
        result = await db.execute(
            select(Note.ratings, Note.version).where(Note.id == note_id)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError(resource="note", resource_id=str(note_id))

        ratings = merge_rating(row.ratings or [], rater_id, value, comment)
        updated = await db.execute(
            update(Note)
            .where(Note.id == note_id, Note.version == row.version)
            .values(
                ratings=ratings,
                avg_rating=average_rating(ratings),
                version=row.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if updated.rowcount == 0:
            await db.rollback()
            logger.debug("Version conflict on note %s (seen version %d)", note_id, row.version)
            raise _VersionConflict()
        await db.commit()

    async def upsert_rating(
        self,
        db: AsyncSession,
        note_id: Any,
        rater_id: str,
        value: Any,
        comment: Optional[str] = None,
    ) -> NoteResponse:
        """
        Record `rater_id`'s rating of a note, replacing any earlier one.

        Returns:
            The note as stored after the write.

        Raises:
            ValidationError:       value not an integer in [1, 5] (nothing written)
            NotFoundError:         no note with that id, or a malformed id
            ConcurrentUpdateError: lost the version race on every attempt
            DatabaseError:         query or commit failed
        """
        note_id = parse_note_id(note_id)
        value = validate_rating_value(value)
        comment = (comment.strip() or None) if comment else None

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(_VersionConflict),
                stop=stop_after_attempt(settings.rating_retry_attempts),
                wait=wait_random_exponential(multiplier=0.01, max=0.2),
            ):
                with attempt:
                    await self._attempt(db, note_id, rater_id, value, comment)
        except RetryError:
            logger.warning(
                "Rating of note %s by %s abandoned after %d conflicting attempts",
                note_id,
                rater_id,
                settings.rating_retry_attempts,
            )
            raise ConcurrentUpdateError(context={"note_id": str(note_id)})
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Database error rating note %s: %s", note_id, str(e))
            raise DatabaseError(
                message="Could not save your rating. Please try again.",
                context={"note_id": str(note_id)},
            )

        result = await db.execute(
            select(Note)
            .where(Note.id == note_id)
            .execution_options(populate_existing=True)
        )
        note = result.scalar_one_or_none()
        if note is None:
            raise NotFoundError(resource="note", resource_id=str(note_id))
        logger.info(
            "Note %s rated %d by %s (avg=%s, count=%d)",
            note_id,
            value,
            rater_id,
            note.avg_rating,
            len(note.ratings),
        )
        return NoteResponse.from_note(note)


rating_service = RatingService()
