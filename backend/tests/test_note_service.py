"""
ShareNotes Backend — Note Service Tests
=========================================

What:  Tests for the catalog: create, get, list, download counting, delete,
       uploader statistics.
How:   Most tests run against the temporary SQLite database from conftest;
       database failures are injected with the mock session.

What we test:
    ✅ Form-value coercion (is_paid, price) and required subject
    ✅ Pagination total is independent of the page (P3)
    ✅ Sort order: avg_rating desc, then newest (P4)
    ✅ Filters compose with AND (P5)
    ✅ Concurrent downloads are all counted (P6)
    ✅ Delete succeeds even when the file cannot be removed (P7)
    ✅ Missing file: download 404s, get still works (P8)
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from sharenotes.exceptions import (
    DatabaseError,
    NoteFileMissingError,
    NotFoundError,
    ValidationError,
)
from sharenotes.models.note import Note
from sharenotes.services.file_service import file_service
from sharenotes.services.note_service import (
    NoteService,
    coerce_is_paid,
    coerce_price,
    download_filename,
    parse_note_id,
)


class TestCoercion:

    @pytest.mark.parametrize("raw", [True, "true", "TRUE", "1", "yes", " on "])
    def test_is_paid_truthy(self, raw):
        assert coerce_is_paid(raw) is True

    @pytest.mark.parametrize("raw", [False, None, "", "false", "0", "no", 1])
    def test_is_paid_falsy(self, raw):
        assert coerce_is_paid(raw) is False

    @pytest.mark.parametrize(
        "raw, expected",
        [("12.5", 12.5), (3, 3.0), (None, 0.0), ("abc", 0.0), ("-4", 0.0), ("inf", 0.0), ("nan", 0.0)],
    )
    def test_price(self, raw, expected):
        assert coerce_price(raw) == expected

    def test_download_filename_collapses_whitespace(self):
        assert download_filename("Physics 101") == "Physics_101.pdf"
        assert download_filename("  Data \t Structures  ") == "Data_Structures.pdf"

    def test_download_filename_replaces_path_separators(self):
        assert download_filename("Maths/Stats") == "Maths_Stats.pdf"
        assert download_filename("a \\ b / c") == "a_b_c.pdf"


class TestNoteServiceCreate:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_create_note_defaults(self, db_session):
        note = await self.service.create_note(
            db=db_session,
            subject="  Physics 101 ",
            file_path="2026/10/19/a.pdf",
            is_paid="true",
            price="25",
            uploader_id="user-1",
        )

        assert note.subject == "Physics 101"
        assert note.is_paid is True
        assert note.price == 25.0
        assert note.ratings == []
        assert note.avg_rating == 0
        assert note.download_count == 0
        assert note.download_url == f"/api/notes/{note.id}/download"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("subject", [None, "", "   "])
    async def test_create_note_requires_subject(self, db_session, subject):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_note(db=db_session, subject=subject, file_path="x.pdf")
        assert exc_info.value.field == "subject"

        rows = (await db_session.execute(select(Note))).scalars().all()
        assert list(rows) == []

    @pytest.mark.asyncio
    async def test_create_note_requires_file(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_note(db=db_session, subject="Physics", file_path=None)
        assert exc_info.value.field == "pdf"

    @pytest.mark.asyncio
    async def test_create_note_database_failure(self, mock_db_session):
        mock_db_session.commit.side_effect = SQLAlchemyError("disk I/O error")

        with pytest.raises(DatabaseError):
            await self.service.create_note(
                db=mock_db_session, subject="Physics", file_path="2026/10/19/a.pdf"
            )
        mock_db_session.rollback.assert_awaited_once()


class TestNoteServiceGet:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_get_note_found(self, db_session, note_factory):
        created = await note_factory(subject="Chemistry")

        result = await self.service.get_note(db_session, created.id)

        assert result.id == created.id
        assert result.subject == "Chemistry"

    @pytest.mark.asyncio
    async def test_get_note_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.get_note(db_session, uuid4())

    @pytest.mark.asyncio
    async def test_get_note_malformed_id(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.get_note(db_session, "not-a-uuid")

    def test_parse_note_id(self):
        note_id = uuid4()

        assert parse_note_id(note_id) is note_id
        assert parse_note_id(str(note_id)) == note_id
        with pytest.raises(NotFoundError):
            parse_note_id("12345")


class TestNoteServiceList:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_list_notes_empty(self, db_session):
        result = await self.service.list_notes(db_session)

        assert result.items == []
        assert result.total == 0
        assert result.page == 1
        assert result.limit == 12
        assert result.pages == 0

    @pytest.mark.asyncio
    async def test_pagination_total_is_independent_of_page(self, db_session, note_factory):
        for i in range(25):
            await note_factory(subject=f"Subject {i}")

        first = await self.service.list_notes(db_session, page=1, limit=10)
        last = await self.service.list_notes(db_session, page=3, limit=10)
        beyond = await self.service.list_notes(db_session, page=4, limit=10)

        assert [len(first.items), len(last.items), len(beyond.items)] == [10, 5, 0]
        assert first.total == last.total == beyond.total == 25
        assert first.pages == 3

        seen = {n.id for n in first.items} | {n.id for n in last.items}
        middle = await self.service.list_notes(db_session, page=2, limit=10)
        seen |= {n.id for n in middle.items}
        assert len(seen) == 25

    @pytest.mark.asyncio
    async def test_sort_by_rating_then_newest(self, db_session, note_factory):
        now = datetime.now(timezone.utc)
        old_top = await note_factory(subject="old top", avg_rating=4.5, created_at=now - timedelta(days=2))
        new_top = await note_factory(subject="new top", avg_rating=4.5, created_at=now)
        middle = await note_factory(subject="middle", avg_rating=3.0, created_at=now)
        unrated = await note_factory(subject="unrated", avg_rating=0.0, created_at=now + timedelta(days=1))

        result = await self.service.list_notes(db_session)

        assert [n.id for n in result.items] == [new_top.id, old_top.id, middle.id, unrated.id]

    @pytest.mark.asyncio
    async def test_filters_compose_with_and(self, db_session, note_factory):
        match = await note_factory(subject="Physics Mechanics", faculty="Science")
        await note_factory(subject="Physics Optics", faculty="Engineering")
        await note_factory(subject="Mechanics of Materials", faculty="Science", uploader_id="other")
        await note_factory(subject="History", faculty="Arts")

        result = await self.service.list_notes(
            db_session, query="mechanics", subject="PHYSICS", faculty="sci"
        )

        assert [n.id for n in result.items] == [match.id]
        assert result.total == 1

    @pytest.mark.asyncio
    async def test_query_matches_either_field(self, db_session, note_factory):
        by_subject = await note_factory(subject="Biology", faculty="Life")
        by_faculty = await note_factory(subject="Anatomy", faculty="Biology Dept")
        await note_factory(subject="Algebra", faculty="Maths")

        result = await self.service.list_notes(db_session, query="bio")

        assert {n.id for n in result.items} == {by_subject.id, by_faculty.id}

    @pytest.mark.asyncio
    async def test_wildcards_are_literal(self, db_session, note_factory):
        await note_factory(subject="Statistics")
        literal = await note_factory(subject="100% Statistics")

        result = await self.service.list_notes(db_session, subject="%")

        assert [n.id for n in result.items] == [literal.id]

    @pytest.mark.asyncio
    async def test_uploader_filter(self, db_session, note_factory):
        mine = await note_factory(uploader_id="me")
        await note_factory(uploader_id="someone-else")

        result = await self.service.list_notes(db_session, uploader_id="me")

        assert [n.id for n in result.items] == [mine.id]

    @pytest.mark.asyncio
    async def test_invalid_page_values_fall_back(self, db_session, note_factory):
        await note_factory()

        result = await self.service.list_notes(db_session, page="zero", limit="-1")

        assert result.page == 1
        assert result.limit == 12
        assert len(result.items) == 1


class TestNoteServiceDownload:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_increment_download(self, db_session, note_factory):
        note = await note_factory()

        first = await self.service.increment_download(db_session, note.id)
        second = await self.service.increment_download(db_session, note.id)

        assert first.download_count == 1
        assert second.download_count == 2

    @pytest.mark.asyncio
    async def test_increment_download_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.increment_download(db_session, uuid4())

    @pytest.mark.asyncio
    async def test_concurrent_downloads_are_all_counted(self, session_factory, note_factory):
        note = await note_factory()
        sessions = [session_factory() for _ in range(10)]

        try:
            await asyncio.gather(
                *(self.service.increment_download(s, note.id) for s in sessions)
            )
        finally:
            for s in sessions:
                await s.close()

        async with session_factory() as check:
            final = await self.service.get_note(check, note.id)
        assert final.download_count == 10

    @pytest.mark.asyncio
    async def test_prepare_download(self, db_session, note_factory, sample_pdf_bytes):
        stored = await file_service.store_file(sample_pdf_bytes, ".pdf")
        note = await note_factory(subject="Linear Algebra", file_path=stored)

        ticket = await self.service.prepare_download(db_session, note.id)

        assert ticket.file_path == stored
        assert ticket.filename == "Linear_Algebra.pdf"
        assert ticket.note.download_count == 1

    @pytest.mark.asyncio
    async def test_missing_file_is_not_counted_and_note_stays_readable(
        self, db_session, note_factory
    ):
        note = await note_factory(file_path="2026/10/19/vanished.pdf")

        with pytest.raises(NoteFileMissingError) as exc_info:
            await self.service.prepare_download(db_session, note.id)
        assert exc_info.value.error_code == "file_not_found"

        fetched = await self.service.get_note(db_session, note.id)
        assert fetched.download_count == 0

    @pytest.mark.asyncio
    async def test_prepare_download_unknown_note(self, db_session):
        with pytest.raises(NotFoundError) as exc_info:
            await self.service.prepare_download(db_session, uuid4())
        assert exc_info.value.error_code == "not_found"


class TestNoteServiceDelete:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_delete_removes_row_and_file(self, db_session, note_factory, sample_pdf_bytes):
        stored = await file_service.store_file(sample_pdf_bytes, ".pdf")
        note = await note_factory(file_path=stored)

        await self.service.delete_note(db_session, note.id)

        assert not (file_service.storage_root / stored).exists()
        with pytest.raises(NotFoundError):
            await self.service.get_note(db_session, note.id)

    @pytest.mark.asyncio
    async def test_delete_succeeds_when_file_removal_fails(self, db_session, note_factory):
        note = await note_factory()

        with patch(
            "sharenotes.services.note_service.file_service.cleanup_file",
            new=AsyncMock(return_value=False),
        ) as cleanup:
            await self.service.delete_note(db_session, note.id)

        cleanup.assert_awaited_once_with(note.file_path)
        with pytest.raises(NotFoundError):
            await self.service.get_note(db_session, note.id)

    @pytest.mark.asyncio
    async def test_delete_unknown_note(self, db_session):
        with patch(
            "sharenotes.services.note_service.file_service.cleanup_file",
            new=AsyncMock(),
        ) as cleanup:
            with pytest.raises(NotFoundError):
                await self.service.delete_note(db_session, uuid4())
        cleanup.assert_not_awaited()


class TestUploaderStats:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_stats(self, db_session, note_factory):
        await note_factory(uploader_id="me", subject="Physics", avg_rating=4.0, download_count=3)
        await note_factory(uploader_id="me", subject="Chemistry", avg_rating=2.0, download_count=5)
        await note_factory(uploader_id="me", subject="Physics", avg_rating=3.0)
        await note_factory(uploader_id="other", subject="History", avg_rating=5.0, download_count=99)

        stats = await self.service.uploader_stats(db_session, "me")

        assert stats.total_uploads == 3
        assert stats.subjects == ["Chemistry", "Physics"]
        assert stats.total_downloads == 8
        assert stats.average_rating == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_stats_without_uploads(self, db_session):
        stats = await self.service.uploader_stats(db_session, "nobody")

        assert stats.total_uploads == 0
        assert stats.subjects == []
        assert stats.total_downloads == 0
        assert stats.average_rating == 0
