"""Integration tests for resuming unfinished ingestion runs at startup."""

import uuid
from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from pdfchat.config import Settings
from pdfchat.db.chunks import chunk_id_for
from pdfchat.db.engine import create_engine_for_url, create_session_factory
from pdfchat.db.models import Document, DocumentChunk, IngestionStep
from pdfchat.docs.ingest import IngestionJob
from pdfchat.llm.client import DeterministicStubClient
from pdfchat.main import app
from pdfchat.orchestration.ingestion import EXTRACT_STEP, resume_unfinished_ingestions


class CountingClient(DeterministicStubClient):
    """Stub model client that counts extraction and embedding calls."""

    def __init__(self) -> None:
        super().__init__(dimensions=768)
        self.extract_calls = 0
        self.embed_calls = 0

    async def extract_markdown(self, images: list[bytes], *, prompt: str) -> str:
        self.extract_calls += 1
        return await super().extract_markdown(images, prompt=prompt)

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        self.embed_calls += 1
        return await super().embed_many(texts)


class RecordingScheduler:
    def __init__(self) -> None:
        self.jobs: list[IngestionJob] = []

    def submit(self, job: IngestionJob) -> None:
        self.jobs.append(job)


@pytest.fixture
def sync_engine(sqlite_path: Path) -> Generator[Engine, None, None]:
    engine = create_engine(f"sqlite:///{sqlite_path}")
    yield engine
    engine.dispose()


def _seed(engine: Engine, *, status: str, filename: str = "/tmp/x.pdf") -> uuid.UUID:
    with Session(engine) as session:
        doc = Document(
            user_id=uuid.uuid4(),
            title="Seeded",
            filename=filename,
            file_size=3,
            last_page=1,
            ingestion_status=status,
        )
        session.add(doc)
        session.commit()
        return doc.id


def test_startup_finishes_interrupted_ingestion(
    sqlite_url: str,
    sync_engine: Engine,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A run killed after extraction resumes at embedding on the next start."""
    document_id = _seed(sync_engine, status="extracting", filename=str(tmp_path / "gone.pdf"))
    with Session(sync_engine) as session:
        doc = session.get(Document, document_id)
        session.add(
            IngestionStep(
                document_id=document_id,
                name=EXTRACT_STEP,
                result={"pages": 3, "groups": 1, "chunks": 1, "emptyGroups": 0},
            )
        )
        session.add(
            DocumentChunk(
                id=chunk_id_for(document_id, 0),
                document_id=document_id,
                user_id=doc.user_id,
                content="# Section\n\nExtracted before the restart",
                start_page=1,
                end_page=3,
                chunk_index=0,
                token_count=8,
            )
        )
        session.commit()

    engine = create_engine_for_url(sqlite_url, poolclass=NullPool)
    factory = create_session_factory(engine)
    client = CountingClient()
    monkeypatch.setattr("pdfchat.main.get_session_factory", lambda: factory)
    monkeypatch.setattr("pdfchat.main.get_llm_client", lambda settings: client)
    settings = Settings(storage_dir=str(tmp_path / "uploads"))
    monkeypatch.setattr("pdfchat.main.get_settings", lambda: settings)

    # Entering runs startup (resume); leaving drains the scheduler
    with TestClient(app):
        pass

    with Session(sync_engine) as session:
        doc = session.get(Document, document_id)
        chunk = session.get(DocumentChunk, chunk_id_for(document_id, 0))
        steps = session.scalars(
            select(IngestionStep.name).where(IngestionStep.document_id == document_id)
        ).all()

        assert doc.ingestion_status == "ready"
        assert chunk.embedding is not None
    # The source file does not exist, so any extraction attempt would have failed the run
    assert client.extract_calls == 0
    assert client.embed_calls == 1
    assert set(steps) == {"extract-pages", "generate-embeddings", "mark-ready"}


@pytest.mark.asyncio
async def test_resume_submits_only_unfinished_documents(
    session_factory: async_sessionmaker[AsyncSession], sync_engine: Engine
) -> None:
    unfinished = {
        status: _seed(sync_engine, status=status) for status in ("pending", "extracting", "embedding")
    }
    _seed(sync_engine, status="ready")
    _seed(sync_engine, status="failed")
    scheduler = RecordingScheduler()

    submitted = await resume_unfinished_ingestions(session_factory, scheduler)

    assert submitted == 3
    assert {job.document_id for job in scheduler.jobs} == set(unfinished.values())
    assert all(job.source == "/tmp/x.pdf" for job in scheduler.jobs)


@pytest.mark.asyncio
async def test_resume_with_nothing_to_do(
    session_factory: async_sessionmaker[AsyncSession], sync_engine: Engine
) -> None:
    _seed(sync_engine, status="ready")
    scheduler = RecordingScheduler()

    assert await resume_unfinished_ingestions(session_factory, scheduler) == 0
    assert scheduler.jobs == []
