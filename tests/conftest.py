"""Shared pytest fixtures for all test suites."""

import os
import uuid
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import fitz  # PyMuPDF
import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from pdfchat.db.context import RequestContext
from pdfchat.db.engine import create_engine_for_url, create_session_factory
from pdfchat.db.models import Base


@pytest.fixture
def sqlite_path(tmp_path: Path) -> Path:
    """File-backed SQLite database with the schema created.

    A file (not :memory:) so that every connection, sync or async, sees the
    same database.
    """
    path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    engine.dispose()
    return path


@pytest.fixture
def sqlite_url(sqlite_path: Path) -> str:
    """Async URL for the test database."""
    return f"sqlite+aiosqlite:///{sqlite_path}"


@pytest_asyncio.fixture
async def test_engine(sqlite_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Async engine bound to the test database."""
    engine = create_engine_for_url(sqlite_url)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for code that opens its own sessions."""
    return create_session_factory(test_engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """One session for direct persistence calls."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def ctx() -> RequestContext:
    """A fresh owner for each test."""
    return RequestContext(user_id=uuid.uuid4())


@pytest.fixture
def make_pdf() -> Callable[[int], bytes]:
    """Build an in-memory PDF with N text pages."""

    def _make(pages: int) -> bytes:
        doc = fitz.open()
        for number in range(1, pages + 1):
            page = doc.new_page()
            page.insert_text((72, 72), f"Page {number}")
        data = doc.tobytes()
        doc.close()
        return data

    return _make


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string
    with the vector extension available. Tests using this fixture should be
    marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    # Extension first, without the pgvector codec hook
    bootstrap = create_async_engine(database_url, poolclass=NullPool)
    async with bootstrap.begin() as conn:
        await conn.exec_driver_sql("CREATE EXTENSION IF NOT EXISTS vector")
    await bootstrap.dispose()

    engine = create_engine_for_url(database_url, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
