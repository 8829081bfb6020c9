"""
ShareNotes Backend — Rating Service Tests
===========================================

What:  Tests for the rating upsert and the average it maintains.

What we test:
    ✅ avg_rating always equals the mean of the stored values (P1)
    ✅ A second rating from the same rater replaces the first (P2)
    ✅ Values outside 1-5 are rejected before anything is written
    ✅ Concurrent raters on one note all end up in the list
    ✅ Losing every compare-and-swap surfaces as ConcurrentUpdateError
"""

import asyncio
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from sharenotes.exceptions import (
    ConcurrentUpdateError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from sharenotes.services.note_service import note_service
from sharenotes.services.rating_service import (
    RatingService,
    _VersionConflict,
    average_rating,
    merge_rating,
    validate_rating_value,
)


class TestRatingHelpers:

    @pytest.mark.parametrize("value", [1, 3, 5])
    def test_valid_values(self, value):
        assert validate_rating_value(value) == value

    @pytest.mark.parametrize("value", [0, 6, -1, 4.5, "4", None, True])
    def test_invalid_values(self, value):
        with pytest.raises(ValidationError) as exc_info:
            validate_rating_value(value)
        assert exc_info.value.field == "value"

    def test_merge_appends_new_rater(self):
        existing = [{"rater_id": "a", "value": 5, "comment": None}]

        merged = merge_rating(existing, "b", 3, "ok")

        assert [r["rater_id"] for r in merged] == ["a", "b"]
        assert existing == [{"rater_id": "a", "value": 5, "comment": None}]

    def test_merge_replaces_in_place(self):
        existing = [
            {"rater_id": "a", "value": 5, "comment": None},
            {"rater_id": "b", "value": 1, "comment": "bad"},
            {"rater_id": "c", "value": 4, "comment": None},
        ]

        merged = merge_rating(existing, "b", 4, "better")

        assert [r["rater_id"] for r in merged] == ["a", "b", "c"]
        assert merged[1] == {"rater_id": "b", "value": 4, "comment": "better"}

    def test_average(self):
        assert average_rating([]) == 0.0
        assert average_rating([{"value": 5}, {"value": 4}, {"value": 4}]) == pytest.approx(13 / 3)


class TestUpsertRating:

    def setup_method(self):
        self.service = RatingService()

    @pytest.mark.asyncio
    async def test_first_rating(self, db_session, note_factory):
        note = await note_factory()

        result = await self.service.upsert_rating(db_session, note.id, "u1", 4, "  helpful  ")

        assert result.avg_rating == 4.0
        assert len(result.ratings) == 1
        assert result.ratings[0].rater_id == "u1"
        assert result.ratings[0].comment == "helpful"

    @pytest.mark.asyncio
    async def test_average_is_exact_mean(self, db_session, note_factory):
        note = await note_factory()

        await self.service.upsert_rating(db_session, note.id, "u1", 5)
        await self.service.upsert_rating(db_session, note.id, "u2", 4)
        result = await self.service.upsert_rating(db_session, note.id, "u3", 4)

        values = [r.value for r in result.ratings]
        assert result.avg_rating == pytest.approx(sum(values) / len(values))
        assert result.avg_rating == pytest.approx(4.333333333)

    @pytest.mark.asyncio
    async def test_resubmission_replaces_previous_rating(self, db_session, note_factory):
        note = await note_factory()

        await self.service.upsert_rating(db_session, note.id, "u1", 2, "meh")
        await self.service.upsert_rating(db_session, note.id, "u2", 5)
        result = await self.service.upsert_rating(db_session, note.id, "u1", 4)

        assert [(r.rater_id, r.value) for r in result.ratings] == [("u1", 4), ("u2", 5)]
        assert result.ratings[0].comment is None
        assert result.avg_rating == 4.5

    @pytest.mark.asyncio
    async def test_invalid_value_writes_nothing(self, db_session, note_factory):
        note = await note_factory()

        with pytest.raises(ValidationError):
            await self.service.upsert_rating(db_session, note.id, "u1", 7)

        fetched = await note_service.get_note(db_session, note.id)
        assert fetched.ratings == []
        assert fetched.avg_rating == 0

    @pytest.mark.asyncio
    async def test_unknown_note(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.upsert_rating(db_session, uuid4(), "u1", 3)

    @pytest.mark.asyncio
    async def test_concurrent_raters_are_all_recorded(self, session_factory, note_factory):
        note = await note_factory()
        raters = {"u1": 5, "u2": 4, "u3": 2, "u4": 1}
        sessions = [session_factory() for _ in raters]

        try:
            await asyncio.gather(
                *(
                    self.service.upsert_rating(s, note.id, rater, value)
                    for s, (rater, value) in zip(sessions, raters.items())
                )
            )
        finally:
            for s in sessions:
                await s.close()

        async with session_factory() as check:
            final = await note_service.get_note(check, note.id)
        assert {r.rater_id: r.value for r in final.ratings} == raters
        assert final.avg_rating == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_conflicts_exhaust_retries(self, db_session, note_factory):
        note = await note_factory()

        with patch.object(
            self.service, "_attempt", new=AsyncMock(side_effect=_VersionConflict())
        ) as attempt:
            with pytest.raises(ConcurrentUpdateError):
                await self.service.upsert_rating(db_session, note.id, "u1", 3)

        assert attempt.await_count == 5

    @pytest.mark.asyncio
    async def test_database_failure(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("locked"))

        with pytest.raises(DatabaseError):
            await self.service.upsert_rating(mock_db_session, uuid4(), "u1", 3)
        mock_db_session.rollback.assert_awaited()
