"""Document persistence with ownership scoping and status enforcement."""

import logging
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pdfchat.db.context import RequestContext
from pdfchat.db.models import Document, utcnow
from pdfchat.db.steps import clear_steps
from pdfchat.errors import DocumentNotFoundError, InvalidStatusTransition
from pdfchat.models.documents import IngestionStatus, predecessors_of

logger = logging.getLogger(__name__)


async def create_document(
    session: AsyncSession,
    ctx: RequestContext,
    *,
    title: str,
    filename: str,
    file_size: int,
    document_id: UUID | None = None,
) -> Document:
    """Insert a new document in the pending state.

    Args:
        session: Async database session
        ctx: Request context (owner)
        title: Display title
        filename: Retrieval handle of the stored PDF
        file_size: Size in bytes
        document_id: Optional pre-allocated id

    Returns:
        Persisted Document row
    """
    now = utcnow()
    doc = Document(
        user_id=ctx.user_id,
        title=title,
        filename=filename,
        file_size=file_size,
        last_page=1,
        ingestion_status=IngestionStatus.pending.value,
        created_at=now,
        updated_at=now,
    )
    if document_id is not None:
        doc.id = document_id
    session.add(doc)
    await session.commit()
    return doc


async def get_owned_document(
    session: AsyncSession, document_id: UUID, ctx: RequestContext
) -> Document:
    """Fetch a document owned by the caller.

    Raises:
        DocumentNotFoundError: If absent or owned by another user
    """
    result = await session.execute(
        select(Document)
        .where(Document.id == document_id, Document.user_id == ctx.user_id)
        # Status is written by bulk UPDATEs; never trust a stale identity-map copy
        .execution_options(populate_existing=True)
    )
    doc = result.scalar_one_or_none()
    if doc is None:
        raise DocumentNotFoundError(f"Document {document_id} not found")
    return doc


async def list_documents(session: AsyncSession, ctx: RequestContext) -> list[Document]:
    """List the caller's documents, newest first."""
    result = await session.execute(
        select(Document)
        .where(Document.user_id == ctx.user_id)
        .order_by(Document.created_at.desc())
    )
    return list(result.scalars().all())


async def update_document(
    session: AsyncSession,
    document_id: UUID,
    ctx: RequestContext,
    *,
    title: str | None = None,
    last_page: int | None = None,
) -> Document:
    """Rename a document and/or record the reading position."""
    doc = await get_owned_document(session, document_id, ctx)
    if title is not None:
        doc.title = title
    if last_page is not None:
        doc.last_page = last_page
    doc.updated_at = utcnow()
    await session.commit()
    return doc


async def delete_document(session: AsyncSession, document_id: UUID, ctx: RequestContext) -> Document:
    """Delete a document; chunks, conversations and checkpoints cascade."""
    doc = await get_owned_document(session, document_id, ctx)
    await session.execute(
        delete(Document).where(Document.id == document_id, Document.user_id == ctx.user_id)
    )
    await session.commit()
    return doc


async def get_ingestion_status(session: AsyncSession, document_id: UUID) -> IngestionStatus | None:
    """Read the current status without ownership checks (pipeline use)."""
    result = await session.execute(
        select(Document.ingestion_status).where(Document.id == document_id)
    )
    raw = result.scalar_one_or_none()
    return IngestionStatus(raw) if raw is not None else None


async def list_unfinished_documents(session: AsyncSession) -> list[Document]:
    """Documents whose ingestion has not reached a terminal state, oldest first.

    Used at startup to resubmit runs a previous process never finished.
    """
    in_progress = [
        IngestionStatus.pending.value,
        IngestionStatus.extracting.value,
        IngestionStatus.embedding.value,
    ]
    result = await session.execute(
        select(Document)
        .where(Document.ingestion_status.in_(in_progress))
        .order_by(Document.created_at.asc())
    )
    return list(result.scalars().all())


async def set_ingestion_status(
    session: AsyncSession, document_id: UUID, target: IngestionStatus
) -> IngestionStatus:
    """Write a status, enforcing the state machine at the write boundary.

    The UPDATE is conditioned on the current value being a legal predecessor,
    so concurrent writers cannot skip a state.

    Returns:
        The previous status

    Raises:
        DocumentNotFoundError: If the document does not exist
        InvalidStatusTransition: If the current status forbids the write
    """
    current = await get_ingestion_status(session, document_id)
    if current is None:
        raise DocumentNotFoundError(f"Document {document_id} not found")

    allowed_from = [status.value for status in predecessors_of(target)]
    result = await session.execute(
        update(Document)
        .where(Document.id == document_id, Document.ingestion_status.in_(allowed_from))
        .values(ingestion_status=target.value, updated_at=utcnow())
    )
    await session.commit()

    if result.rowcount == 0:
        latest = await get_ingestion_status(session, document_id)
        raise InvalidStatusTransition(document_id, (latest or current).value, target.value)

    return current


async def mark_ingestion_failed(session: AsyncSession, document_id: UUID) -> bool:
    """Failure hook: move an in-progress document to failed.

    Idempotent. A document already failed is left alone, and a ready or
    missing document is never touched.

    Returns:
        True if this call performed the transition
    """
    in_progress = [
        IngestionStatus.pending.value,
        IngestionStatus.extracting.value,
        IngestionStatus.embedding.value,
    ]
    result = await session.execute(
        update(Document)
        .where(Document.id == document_id, Document.ingestion_status.in_(in_progress))
        .values(ingestion_status=IngestionStatus.failed.value, updated_at=utcnow())
    )
    await session.commit()

    changed = result.rowcount > 0
    if not changed:
        logger.info(f"[ingest] failure hook no-op for document {document_id}")
    return changed


async def reset_for_retry(session: AsyncSession, document_id: UUID, ctx: RequestContext) -> Document:
    """Explicit retry entry point for a failed document.

    Puts the document back to pending and clears stage checkpoints so the
    next run starts from extraction.

    Raises:
        DocumentNotFoundError: If absent or not owned
        InvalidStatusTransition: If the document is not failed
    """
    doc = await get_owned_document(session, document_id, ctx)
    if doc.ingestion_status != IngestionStatus.failed.value:
        raise InvalidStatusTransition(
            document_id, doc.ingestion_status, IngestionStatus.pending.value
        )

    await clear_steps(session, document_id)
    await session.execute(
        update(Document)
        .where(
            Document.id == document_id,
            Document.ingestion_status == IngestionStatus.failed.value,
        )
        .values(ingestion_status=IngestionStatus.pending.value, updated_at=utcnow())
    )
    await session.commit()
    await session.refresh(doc)
    return doc
