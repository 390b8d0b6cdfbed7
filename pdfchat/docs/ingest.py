"""Ingestion stages - extract pages to chunks, fill embeddings, finalize."""

import logging
import time
from dataclasses import dataclass
from functools import partial
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdfchat.db.chunks import list_chunks_missing_embeddings, set_embeddings, upsert_chunk
from pdfchat.db.documents import set_ingestion_status
from pdfchat.docs.chunker import group_pages
from pdfchat.docs.pdf import render_pages_async
from pdfchat.docs.storage import SourceFetcher
from pdfchat.errors import NonRetriableError
from pdfchat.llm.client import Embedder, PageExtractor
from pdfchat.models.documents import IngestionStatus, PageGroup
from pdfchat.orchestration.prompts import EXTRACTION_PROMPT
from pdfchat.tools.executor import BoundedExecutor, first_failure
from pdfchat.tools.retry import RetryPolicy
from pdfchat.utils.logging import StructuredIngestionLogger
from pdfchat.utils.metrics import PrometheusIngestionMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestionJob:
    """One document to ingest.

    Attributes:
        document_id: Document being ingested
        user_id: Owner, copied onto every chunk
        source: Opaque retrieval handle for the PDF (URL or path)
    """

    document_id: UUID
    user_id: UUID
    source: str


class DocumentIngestor:
    """Stage bodies of the ingestion pipeline.

    Each stage announces its status first, so the status write boundary
    rejects work on a document that is already terminal.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        extractor: PageExtractor,
        embedder: Embedder,
        fetcher: SourceFetcher,
        retry: RetryPolicy | None = None,
        group_size: int = 5,
        extraction_concurrency: int = 20,
        embedding_batch_size: int = 100,
        render_scale: float = 1.5,
        metrics: PrometheusIngestionMetrics | None = None,
        telemetry: StructuredIngestionLogger | None = None,
    ) -> None:
        if embedding_batch_size < 1:
            raise ValueError(f"embedding_batch_size must be >= 1, got {embedding_batch_size}")
        self._session_factory = session_factory
        self._extractor = extractor
        self._embedder = embedder
        self._fetcher = fetcher
        self._retry = retry or RetryPolicy()
        self.group_size = group_size
        self.extraction_concurrency = extraction_concurrency
        self.embedding_batch_size = embedding_batch_size
        self.render_scale = render_scale
        self._metrics = metrics or PrometheusIngestionMetrics()
        self._telemetry = telemetry or StructuredIngestionLogger()

    async def _set_status(self, document_id: UUID, status: IngestionStatus) -> None:
        async with self._session_factory() as session:
            await set_ingestion_status(session, document_id, status)

    async def extract(self, job: IngestionJob) -> dict[str, Any]:
        """Fetch, render and group the PDF, then extract every group concurrently.

        All group tasks settle before this returns or raises, so chunks
        written by successful groups are kept even when a sibling fails.

        Returns:
            Summary with page, group and chunk counts

        Raises:
            NonRetriableError: Unreadable source or zero pages
            Exception: The earliest-submitted group failure
        """
        await self._set_status(job.document_id, IngestionStatus.extracting)

        data = await self._fetcher.fetch(job.source)
        images = await render_pages_async(data, scale=self.render_scale)
        if not images:
            raise NonRetriableError(f"Document {job.document_id} has zero pages")

        groups = group_pages(len(images), group_size=self.group_size)
        logger.info(
            f"[extract] document {job.document_id}: {len(images)} pages in {len(groups)} groups"
        )

        tasks = [
            partial(
                self._extract_group,
                job,
                group,
                images[group.start_page - 1 : group.end_page],
                len(groups),
            )
            for group in groups
        ]
        executor = BoundedExecutor(self.extraction_concurrency)
        outcomes = await executor.run(tasks)

        error = first_failure(outcomes)
        if error is not None:
            raise error

        stored = [outcome.value for outcome in outcomes if outcome.value is not None]
        return {
            "pages": len(images),
            "groups": len(groups),
            "chunks": len(stored),
            "emptyGroups": len(groups) - len(stored),
        }

    async def _extract_group(
        self, job: IngestionJob, group: PageGroup, images: list[bytes], total_groups: int
    ) -> str | None:
        """Extract one group and upsert its chunk; None when the model saw no content."""
        payload_kb = sum(len(image) for image in images) // 1024
        model_started = time.monotonic()
        try:
            markdown = await self._retry.call(
                partial(self._extractor.extract_markdown, images, prompt=EXTRACTION_PROMPT),
                operation="extract",
            )
        except Exception:
            self._metrics.record_group("failed")
            raise
        model_ms = (time.monotonic() - model_started) * 1000

        content = (markdown or "").strip()
        if not content:
            self._metrics.record_group("empty")
            self._telemetry.log_group(
                job.document_id,
                group.index,
                total_groups,
                pages=group.page_count,
                payload_kb=payload_kb,
                model_ms=model_ms,
                db_ms=0.0,
                content_length=0,
            )
            return None

        db_started = time.monotonic()
        # One session per task; AsyncSession is not safe to share across tasks
        async with self._session_factory() as session:
            chunk_id = await upsert_chunk(
                session,
                document_id=job.document_id,
                user_id=job.user_id,
                chunk_index=group.index,
                start_page=group.start_page,
                end_page=group.end_page,
                content=content,
            )
        db_ms = (time.monotonic() - db_started) * 1000

        self._metrics.record_group("stored")
        self._telemetry.log_group(
            job.document_id,
            group.index,
            total_groups,
            pages=group.page_count,
            payload_kb=payload_kb,
            model_ms=model_ms,
            db_ms=db_ms,
            content_length=len(content),
        )
        return chunk_id

    async def embed(self, job: IngestionJob) -> dict[str, Any]:
        """Fill every missing embedding, one sequential batch at a time.

        Returns:
            Summary with embedded chunk and batch counts
        """
        await self._set_status(job.document_id, IngestionStatus.embedding)

        async with self._session_factory() as session:
            pending = await list_chunks_missing_embeddings(session, job.document_id)
            work = [(chunk.id, chunk.content) for chunk in pending]

        size = self.embedding_batch_size
        batches = [work[i : i + size] for i in range(0, len(work), size)]

        for batch_index, batch in enumerate(batches):
            texts = [content for _, content in batch]

            api_started = time.monotonic()
            vectors = await self._retry.call(
                partial(self._embedder.embed_many, texts), operation="embed"
            )
            api_ms = (time.monotonic() - api_started) * 1000

            if len(vectors) != len(batch):
                raise ValueError(
                    f"Embedding model returned {len(vectors)} vectors for {len(batch)} texts"
                )

            db_started = time.monotonic()
            async with self._session_factory() as session:
                await set_embeddings(
                    session, [(chunk_id, vector) for (chunk_id, _), vector in zip(batch, vectors)]
                )
            db_ms = (time.monotonic() - db_started) * 1000

            self._telemetry.log_batch(
                job.document_id,
                batch_index,
                len(batches),
                chunks=len(batch),
                api_ms=api_ms,
                db_ms=db_ms,
            )

        return {"embedded": len(work), "batches": len(batches)}

    async def finalize(self, job: IngestionJob) -> dict[str, Any]:
        """Mark the document ready."""
        await self._set_status(job.document_id, IngestionStatus.ready)
        logger.info(f"[ingest] document {job.document_id} ready")
        return {"status": IngestionStatus.ready.value}
