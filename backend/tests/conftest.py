"""
ShareNotes Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment overrides are applied before any sharenotes import, so the
       settings singleton, the engine and the file store all point at a
       throwaway SQLite database and storage directory.

Fixture Hierarchy:
    Function-scoped:
    ├── database:        creates the schema, drops it afterwards
    ├── db_session:      real AsyncSession on the test database
    ├── session_factory: opens extra sessions for concurrency tests
    ├── note_factory:    inserts Note rows with arbitrary column values
    ├── mock_db_session: AsyncMock session for fault injection
    ├── temp_storage:    empty directory for FileService tests
    ├── sample_pdf_bytes
    ├── auth_headers:    builds a bearer header for a user id
    └── test_client:     HTTPX AsyncClient over ASGITransport
"""

import os
import tempfile

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup (must run before sharenotes is imported)
# ══════════════════════════════════════════════════════════════════════════

_TEST_DIR = tempfile.mkdtemp(prefix="sharenotes_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_DIR, "storage")
os.environ["JWT_SECRET"] = "test-secret-not-real"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"

from typing import Any, Callable, Dict  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from jose import jwt  # noqa: E402

from sharenotes.config import settings  # noqa: E402
from sharenotes.database import Base, async_session_factory, engine  # noqa: E402
from sharenotes.models.note import Note  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database():
    """Fresh `notes` table for every test that touches the database."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session(database):
    async with async_session_factory() as session:
        yield session


@pytest.fixture
def session_factory(database):
    """The application's session factory, with the schema in place."""
    return async_session_factory


@pytest_asyncio.fixture
async def note_factory(database):
    """
    Insert a note directly, bypassing the service layer.

    Usage:
        note = await note_factory(subject="Physics", avg_rating=4.5)
    """
    async def _create(**overrides: Any) -> Note:
        values: Dict[str, Any] = {
            "subject": "Physics 101",
            "file_path": "2026/10/19/missing.pdf",
            "year": "2",
            "section": "A",
            "faculty": "Science",
            "uploader_id": "uploader-1",
            "ratings": [],
            "avg_rating": 0.0,
        }
        values.update(overrides)
        note = Note(**values)
        async with async_session_factory() as session:
            session.add(note)
            await session.commit()
        return note

    return _create


@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        mock_db_session.commit.side_effect = SQLAlchemyError("boom")
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# File Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def sample_pdf_bytes():
    """A minimal single-page PDF; libmagic identifies it by the %PDF- header."""
    return (
        b"%PDF-1.4\n"
        b"1 0 obj << /Type /Catalog /Pages 2 0 R >> endobj\n"
        b"2 0 obj << /Type /Pages /Kids [3 0 R] /Count 1 >> endobj\n"
        b"3 0 obj << /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >> endobj\n"
        b"trailer << /Root 1 0 R >>\n"
        b"%%EOF\n"
    )


# ══════════════════════════════════════════════════════════════════════════
# HTTP Fixtures
# ══════════════════════════════════════════════════════════════════════════

def make_token(user_id: str, **claims: Any) -> str:
    payload = {"sub": user_id, **claims}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


@pytest.fixture
def auth_headers() -> Callable[[str], Dict[str, str]]:
    def _headers(user_id: str = "user-1") -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _headers


@pytest_asyncio.fixture
async def test_client(database):
    """
    HTTPX AsyncClient talking to the FastAPI app in-process.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from sharenotes.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
