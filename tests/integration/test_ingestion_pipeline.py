"""Integration tests for the ingestion pipeline (real PDFs, fake models, SQLite)."""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdfchat.db.chunks import list_chunks
from pdfchat.db.context import RequestContext
from pdfchat.db.documents import create_document, get_ingestion_status
from pdfchat.db.steps import StepRunner
from pdfchat.docs.ingest import DocumentIngestor, IngestionJob
from pdfchat.docs.storage import SourceFetcher
from pdfchat.llm.client import DeterministicStubClient
from pdfchat.models.documents import IngestionStatus
from pdfchat.orchestration.ingestion import (
    EMBED_STEP,
    EXTRACT_STEP,
    FINALIZE_STEP,
    IngestionPipeline,
    IngestionScheduler,
)
from pdfchat.tools.retry import RetryPolicy

S = IngestionStatus


class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeExtractor:
    """Returns markdown per group; behaviour keyed on the group's page count."""

    def __init__(
        self,
        *,
        empty_for_pages: int | None = None,
        fail_for_pages: int | None = None,
        status_probe: Callable[[], Awaitable[object]] | None = None,
    ) -> None:
        self.empty_for_pages = empty_for_pages
        self.fail_for_pages = fail_for_pages
        self.calls = 0
        self.page_counts: list[int] = []
        self.status_probe = status_probe
        self.seen_status: list[object] = []

    async def extract_markdown(self, images: list[bytes], *, prompt: str) -> str:
        self.calls += 1
        self.page_counts.append(len(images))
        if self.status_probe is not None:
            self.seen_status.append(await self.status_probe())
        if len(images) == self.fail_for_pages:
            raise ConnectionError("vision model unavailable")
        if len(images) == self.empty_for_pages:
            return "   "
        return f"# Section\n\n{len(images)} pages of text"


class FakeEmbedder(DeterministicStubClient):
    """Stub embeddings that can fail the first N batch calls."""

    def __init__(self, *, fail_first: int = 0) -> None:
        super().__init__(dimensions=768)
        self.fail_first = fail_first
        self.batch_sizes: list[int] = []

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        self.batch_sizes.append(len(texts))
        if len(self.batch_sizes) <= self.fail_first:
            raise TimeoutError("embedding timeout")
        return await super().embed_many(texts)


def build_pipeline(
    session_factory: async_sessionmaker[AsyncSession],
    extractor: FakeExtractor,
    embedder: FakeEmbedder,
    *,
    inner_attempts: int = 2,
    outer_attempts: int = 3,
    batch_size: int = 100,
    outer_sleep: FakeSleep | None = None,
) -> IngestionPipeline:
    ingestor = DocumentIngestor(
        session_factory=session_factory,
        extractor=extractor,
        embedder=embedder,
        fetcher=SourceFetcher(),
        retry=RetryPolicy(max_attempts=inner_attempts, sleep=FakeSleep()),
        group_size=5,
        extraction_concurrency=20,
        embedding_batch_size=batch_size,
        render_scale=0.5,
    )
    return IngestionPipeline(
        ingestor,
        session_factory,
        max_attempts=outer_attempts,
        retry_delay_seconds=5.0,
        sleep=outer_sleep or FakeSleep(),
    )


async def _job(
    session: AsyncSession, ctx: RequestContext, source: Path | str
) -> IngestionJob:
    doc = await create_document(session, ctx, title="Doc", filename=str(source), file_size=1)
    return IngestionJob(document_id=doc.id, user_id=ctx.user_id, source=str(source))


@pytest.fixture
def pdf_path(tmp_path: Path, make_pdf: Callable[[int], bytes]) -> Callable[[int], Path]:
    def _write(pages: int) -> Path:
        path = tmp_path / f"doc-{pages}-{uuid.uuid4().hex[:6]}.pdf"
        path.write_bytes(make_pdf(pages))
        return path

    return _write


@pytest.mark.asyncio
async def test_happy_path_reaches_ready_with_full_coverage(
    session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    ctx: RequestContext,
    pdf_path: Callable[[int], Path],
) -> None:
    job = await _job(session, ctx, pdf_path(12))
    embedder = FakeEmbedder()
    extractor = FakeExtractor()

    status = await build_pipeline(session_factory, extractor, embedder, batch_size=2).run(job)

    assert status == S.ready
    assert await get_ingestion_status(session, job.document_id) == S.ready
    assert sorted(extractor.page_counts) == [2, 5, 5]

    chunks = await list_chunks(session, job.document_id)
    assert [(c.start_page, c.end_page) for c in chunks] == [(1, 5), (6, 10), (11, 12)]
    assert [c.id for c in chunks] == [f"{job.document_id}-chunk-{i}" for i in range(3)]
    assert all(c.embedding is not None for c in chunks)
    assert all(c.user_id == ctx.user_id for c in chunks)
    # Batches of two, processed in ordinal order
    assert embedder.batch_sizes == [2, 1]


@pytest.mark.asyncio
async def test_stages_announce_their_status(
    session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    ctx: RequestContext,
    pdf_path: Callable[[int], Path],
) -> None:
    job = await _job(session, ctx, pdf_path(3))

    async def probe() -> object:
        async with session_factory() as probe_session:
            return await get_ingestion_status(probe_session, job.document_id)

    extractor = FakeExtractor(status_probe=probe)
    await build_pipeline(session_factory, extractor, FakeEmbedder()).run(job)

    assert extractor.seen_status == [S.extracting]


@pytest.mark.asyncio
async def test_empty_group_leaves_a_gap_not_an_error(
    session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    ctx: RequestContext,
    pdf_path: Callable[[int], Path],
) -> None:
    job = await _job(session, ctx, pdf_path(12))
    extractor = FakeExtractor(empty_for_pages=2)

    status = await build_pipeline(session_factory, extractor, FakeEmbedder()).run(job)

    assert status == S.ready
    chunks = await list_chunks(session, job.document_id)
    assert [(c.start_page, c.end_page) for c in chunks] == [(1, 5), (6, 10)]


@pytest.mark.asyncio
async def test_rerunning_extraction_converges_on_same_rows(
    session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    ctx: RequestContext,
    pdf_path: Callable[[int], Path],
) -> None:
    job = await _job(session, ctx, pdf_path(7))
    pipeline = build_pipeline(session_factory, FakeExtractor(), FakeEmbedder())
    ingestor = pipeline._ingestor

    first = await ingestor.extract(job)
    ids_first = [c.id for c in await list_chunks(session, job.document_id)]
    second = await ingestor.extract(job)
    session.expire_all()
    chunks = await list_chunks(session, job.document_id)

    assert first == second == {"pages": 7, "groups": 2, "chunks": 2, "emptyGroups": 0}
    assert [c.id for c in chunks] == ids_first
    assert len(chunks) == 2


@pytest.mark.asyncio
async def test_outer_budget_is_three_attempts_then_failed(
    session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    ctx: RequestContext,
    pdf_path: Callable[[int], Path],
) -> None:
    job = await _job(session, ctx, pdf_path(12))
    extractor = FakeExtractor(fail_for_pages=2)
    outer_sleep = FakeSleep()

    status = await build_pipeline(
        session_factory, extractor, FakeEmbedder(), inner_attempts=2, outer_sleep=outer_sleep
    ).run(job)

    assert status == S.failed
    assert await get_ingestion_status(session, job.document_id) == S.failed
    # 3 pipeline attempts x 2 inner attempts for the failing group
    assert extractor.page_counts.count(2) == 6
    assert outer_sleep.delays == [5.0, 5.0]
    # Siblings were not cancelled; their chunks survive idempotently
    chunks = await list_chunks(session, job.document_id)
    assert [(c.start_page, c.end_page) for c in chunks] == [(1, 5), (6, 10)]


@pytest.mark.asyncio
async def test_unreachable_source_fails_without_retry(
    session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    ctx: RequestContext,
    tmp_path: Path,
) -> None:
    job = await _job(session, ctx, tmp_path / "missing.pdf")
    extractor = FakeExtractor()
    outer_sleep = FakeSleep()

    status = await build_pipeline(
        session_factory, extractor, FakeEmbedder(), outer_sleep=outer_sleep
    ).run(job)

    assert status == S.failed
    assert outer_sleep.delays == []
    assert extractor.calls == 0
    assert await list_chunks(session, job.document_id) == []


@pytest.mark.asyncio
async def test_unreadable_pdf_fails_without_retry(
    session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    ctx: RequestContext,
    tmp_path: Path,
) -> None:
    source = tmp_path / "broken.pdf"
    source.write_bytes(b"this is not a pdf")
    job = await _job(session, ctx, source)
    outer_sleep = FakeSleep()

    status = await build_pipeline(
        session_factory, FakeExtractor(), FakeEmbedder(), outer_sleep=outer_sleep
    ).run(job)

    assert status == S.failed
    assert outer_sleep.delays == []


@pytest.mark.asyncio
async def test_retry_resumes_after_last_checkpoint(
    session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    ctx: RequestContext,
    pdf_path: Callable[[int], Path],
) -> None:
    job = await _job(session, ctx, pdf_path(10))
    extractor = FakeExtractor()
    embedder = FakeEmbedder(fail_first=1)

    status = await build_pipeline(
        session_factory, extractor, embedder, inner_attempts=1, outer_attempts=2
    ).run(job)

    assert status == S.ready
    # Extraction ran once; the second attempt resumed at embedding
    assert extractor.calls == 2
    assert embedder.batch_sizes == [2, 2]

    steps = StepRunner(session_factory, job.document_id)
    assert await steps.completed(EXTRACT_STEP) == {
        "pages": 10,
        "groups": 2,
        "chunks": 2,
        "emptyGroups": 0,
    }
    assert await steps.completed(EMBED_STEP) == {"embedded": 2, "batches": 1}
    assert await steps.completed(FINALIZE_STEP) == {"status": "ready"}


@pytest.mark.asyncio
async def test_failure_hook_can_run_twice(
    session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    ctx: RequestContext,
    tmp_path: Path,
) -> None:
    job = await _job(session, ctx, tmp_path / "missing.pdf")
    pipeline = build_pipeline(session_factory, FakeExtractor(), FakeEmbedder())

    await pipeline.on_failure(job)
    await pipeline.on_failure(job)

    assert await get_ingestion_status(session, job.document_id) == S.failed


class SlowPipeline:
    """Pipeline stand-in that tracks how many runs overlap."""

    def __init__(self) -> None:
        self.active = 0
        self.peak = 0
        self.runs: list[uuid.UUID] = []

    async def run(self, job: IngestionJob) -> IngestionStatus:
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        self.runs.append(job.document_id)
        return S.ready


@pytest.mark.asyncio
async def test_scheduler_caps_concurrent_pipelines() -> None:
    pipeline = SlowPipeline()
    scheduler = IngestionScheduler(pipeline, limit=2)  # type: ignore[arg-type]
    jobs = [IngestionJob(document_id=uuid.uuid4(), user_id=uuid.uuid4(), source="x") for _ in range(6)]

    for job in jobs:
        scheduler.submit(job)
    await scheduler.drain()

    assert pipeline.peak == 2
    assert scheduler.peak_running == 2
    assert sorted(pipeline.runs) == sorted(job.document_id for job in jobs)
    assert scheduler.pending == 0


@pytest.mark.asyncio
async def test_scheduler_logs_and_survives_crashing_runs() -> None:
    class CrashingPipeline:
        async def run(self, job: IngestionJob) -> IngestionStatus:
            raise RuntimeError("database gone")

    scheduler = IngestionScheduler(CrashingPipeline(), limit=1)  # type: ignore[arg-type]
    task = scheduler.submit(IngestionJob(document_id=uuid.uuid4(), user_id=uuid.uuid4(), source="x"))
    await scheduler.drain()

    assert task.result() is None
