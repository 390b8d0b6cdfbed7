"""Ingestion pipeline - checkpointed stages, outer retry budget and admission control."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdfchat.db.documents import list_unfinished_documents, mark_ingestion_failed
from pdfchat.db.steps import StepRunner
from pdfchat.docs.ingest import DocumentIngestor, IngestionJob
from pdfchat.errors import DocumentNotFoundError, InvalidStatusTransition, NonRetriableError
from pdfchat.models.documents import IngestionStatus
from pdfchat.utils.metrics import PrometheusIngestionMetrics

logger = logging.getLogger(__name__)

EXTRACT_STEP = "extract-pages"
EMBED_STEP = "generate-embeddings"
FINALIZE_STEP = "mark-ready"

# Errors that another pipeline attempt cannot fix
_FATAL_ERRORS = (NonRetriableError, InvalidStatusTransition, DocumentNotFoundError)


class IngestionPipeline:
    """Runs extract -> embed -> finalize for one document.

    Two retry scopes nest here. Each model call has its own RetryPolicy
    inside the stage; this class owns the outer budget that re-runs the
    whole pipeline after a stage escalates. Completed stages are
    checkpointed, so a later attempt resumes after the last one that
    finished. When the budget is spent the failure hook moves the
    document to failed.
    """

    def __init__(
        self,
        ingestor: DocumentIngestor,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_attempts: int = 3,
        retry_delay_seconds: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        metrics: PrometheusIngestionMetrics | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._ingestor = ingestor
        self._session_factory = session_factory
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep
        self._metrics = metrics or PrometheusIngestionMetrics()

    async def run(self, job: IngestionJob) -> IngestionStatus:
        """Ingest a document, retrying the pipeline up to max_attempts times.

        Returns:
            ready on success, failed once the failure hook has run
        """
        steps = StepRunner(self._session_factory, job.document_id)

        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._run_stages(steps, job)
            except _FATAL_ERRORS as e:
                logger.error(
                    f"[ingest] document {job.document_id} failed without retry: "
                    f"{type(e).__name__}: {e}"
                )
                break
            except Exception as e:
                if attempt == self.max_attempts:
                    logger.error(
                        f"[ingest] document {job.document_id} failed after "
                        f"{self.max_attempts} attempts: {type(e).__name__}: {e}"
                    )
                    break
                logger.warning(
                    f"[ingest] document {job.document_id} attempt {attempt} failed "
                    f"({type(e).__name__}), retrying in {self.retry_delay_seconds:g}s"
                )
                await self._sleep(self.retry_delay_seconds)
                continue

            self._metrics.record_run(IngestionStatus.ready.value)
            return IngestionStatus.ready

        await self.on_failure(job)
        self._metrics.record_run(IngestionStatus.failed.value)
        return IngestionStatus.failed

    async def on_failure(self, job: IngestionJob) -> None:
        """Failure hook. Safe to call any number of times."""
        async with self._session_factory() as session:
            await mark_ingestion_failed(session, job.document_id)

    async def _run_stages(self, steps: StepRunner, job: IngestionJob) -> None:
        await self._stage(steps, EXTRACT_STEP, partial(self._ingestor.extract, job))
        await self._stage(steps, EMBED_STEP, partial(self._ingestor.embed, job))
        await self._stage(steps, FINALIZE_STEP, partial(self._ingestor.finalize, job))

    async def _stage(
        self,
        steps: StepRunner,
        name: str,
        fn: Callable[[], Awaitable[dict[str, Any]]],
    ) -> dict[str, Any]:
        started = time.monotonic()
        result = await steps.run(name, fn)
        self._metrics.record_stage(name, (time.monotonic() - started) * 1000)
        return result


class IngestionScheduler:
    """Process-wide admission control for pipeline runs.

    At most `limit` pipelines run at once; further submissions wait on the
    gate. Different documents ingest independently of each other.
    """

    def __init__(self, pipeline: IngestionPipeline, limit: int = 5) -> None:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        self._pipeline = pipeline
        self._gate = asyncio.Semaphore(limit)
        self._tasks: set[asyncio.Task[IngestionStatus | None]] = set()
        self.limit = limit
        self.running = 0
        self.peak_running = 0

    @property
    def pending(self) -> int:
        """Submitted runs that have not finished (waiting or running)."""
        return len(self._tasks)

    def submit(self, job: IngestionJob) -> asyncio.Task[IngestionStatus | None]:
        """Schedule a pipeline run in the background."""
        task = asyncio.create_task(self._admit(job), name=f"ingest-{job.document_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"[ingest] scheduled document {job.document_id} ({self.pending} pending)")
        return task

    async def _admit(self, job: IngestionJob) -> IngestionStatus | None:
        async with self._gate:
            self.running += 1
            self.peak_running = max(self.peak_running, self.running)
            try:
                return await self._pipeline.run(job)
            except Exception:
                # Background task: nobody awaits it, so the error is logged here
                logger.exception(f"[ingest] pipeline crashed for document {job.document_id}")
                return None
            finally:
                self.running -= 1

    async def drain(self) -> None:
        """Wait for every submitted run to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


async def resume_unfinished_ingestions(
    session_factory: async_sessionmaker[AsyncSession], scheduler: IngestionScheduler
) -> int:
    """Resubmit every document left mid-pipeline by a previous process.

    Stage checkpoints make the resumed run skip whatever already finished.

    Returns:
        Number of runs submitted
    """
    async with session_factory() as session:
        docs = await list_unfinished_documents(session)

    for doc in docs:
        scheduler.submit(IngestionJob(document_id=doc.id, user_id=doc.user_id, source=doc.filename))

    if docs:
        logger.info(f"[ingest] resumed {len(docs)} unfinished ingestion runs")
    return len(docs)
