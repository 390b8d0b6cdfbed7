"""FastAPI application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from pdfchat.api.routes.chat import router as chat_router
from pdfchat.api.routes.conversations import router as conversations_router
from pdfchat.api.routes.documents import router as documents_router
from pdfchat.api.routes.health import router as health_router
from pdfchat.api.routes.metrics import router as metrics_router
from pdfchat.config import Settings, get_settings
from pdfchat.db.engine import get_session_factory
from pdfchat.docs.ingest import DocumentIngestor
from pdfchat.docs.storage import LocalBlobStore, SourceFetcher
from pdfchat.llm.client import get_llm_client
from pdfchat.orchestration.chat import ChatService
from pdfchat.orchestration.ingestion import (
    IngestionPipeline,
    IngestionScheduler,
    resume_unfinished_ingestions,
)
from pdfchat.tools.retry import RetryPolicy
from pdfchat.utils.logging import configure_logging

logger = logging.getLogger(__name__)


def build_services(app: FastAPI, settings: Settings) -> None:
    """Wire the model client, pipeline, scheduler and chat service onto app.state."""
    session_factory = get_session_factory()
    client = get_llm_client(settings)

    ingestor = DocumentIngestor(
        session_factory=session_factory,
        extractor=client,
        embedder=client,
        fetcher=SourceFetcher(timeout_seconds=settings.source_fetch_timeout_seconds),
        retry=RetryPolicy(max_attempts=settings.model_call_max_attempts),
        group_size=settings.pages_per_group,
        extraction_concurrency=settings.extraction_concurrency,
        embedding_batch_size=settings.embedding_batch_size,
        render_scale=settings.render_scale,
    )
    pipeline = IngestionPipeline(
        ingestor,
        session_factory,
        max_attempts=settings.pipeline_max_attempts,
        retry_delay_seconds=settings.pipeline_retry_delay_seconds,
    )

    app.state.scheduler = IngestionScheduler(pipeline, limit=settings.ingestion_concurrency)
    app.state.blob_store = LocalBlobStore(settings.storage_dir)
    app.state.chat_service = ChatService(
        session_factory=session_factory,
        model=client,
        embedder=client,
        max_steps=settings.chat_max_steps,
        top_k=settings.semantic_top_k,
        title_length=settings.conversation_title_length,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging()
    build_services(app, settings)
    await resume_unfinished_ingestions(get_session_factory(), app.state.scheduler)
    yield
    scheduler: IngestionScheduler = app.state.scheduler
    if scheduler.pending:
        logger.info(f"Waiting for {scheduler.pending} ingestion runs to finish")
    await scheduler.drain()


app = FastAPI(title="PDF Chat API", version="0.1.0", lifespan=lifespan)

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(documents_router, tags=["documents"])
app.include_router(conversations_router, tags=["conversations"])
app.include_router(chat_router, tags=["chat"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "PDF Chat API", "version": "0.1.0"}
