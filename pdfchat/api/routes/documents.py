"""Document endpoints - upload, list, status polling, file download, update, delete, retry."""

import logging
import uuid
from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from pdfchat.api.auth import get_current_context
from pdfchat.api.deps import get_blob_store, get_scheduler
from pdfchat.config import Settings, get_settings
from pdfchat.db.context import RequestContext
from pdfchat.db.documents import (
    create_document,
    delete_document,
    get_owned_document,
    list_documents,
    reset_for_retry,
    update_document,
)
from pdfchat.db.engine import get_session
from pdfchat.docs.ingest import IngestionJob
from pdfchat.docs.storage import BlobStore
from pdfchat.errors import BlobNotFoundError, DocumentNotFoundError, InvalidStatusTransition
from pdfchat.models.documents import CamelModel, DocumentOut, DocumentStatusOut, IngestionStatus
from pdfchat.orchestration.ingestion import IngestionScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])

PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}


class DocumentListResponse(CamelModel):
    """Response for GET /documents."""

    documents: list[DocumentOut]


class UpdateDocumentRequest(CamelModel):
    """Request body for PATCH /documents/{id}."""

    title: str | None = Field(None, min_length=1, max_length=500)
    last_page: int | None = Field(None, ge=1)


def _not_found(e: DocumentNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _title_from_filename(filename: str) -> str:
    title = filename.rsplit("/", 1)[-1]
    if title.lower().endswith(".pdf"):
        title = title[:-4]
    return title or "Untitled"


@router.post("", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: Annotated[UploadFile, File(description="PDF file")],
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    store: Annotated[BlobStore, Depends(get_blob_store)],
    scheduler: Annotated[IngestionScheduler, Depends(get_scheduler)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> DocumentOut:
    """Store an uploaded PDF and schedule its ingestion.

    Returns:
        The new document, in the pending state

    Raises:
        HTTPException: 400 for non-PDF or empty uploads, 413 when too large
    """
    filename = file.filename or "document.pdf"
    if file.content_type not in PDF_CONTENT_TYPES and not filename.lower().endswith(".pdf"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only PDF files are accepted",
        )

    data = await file.read(settings.max_upload_bytes + 1)
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File is empty")
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.max_upload_bytes} bytes",
        )

    document_id = uuid.uuid4()
    handle = await store.put(f"{ctx.user_id}/{document_id}.pdf", data)
    try:
        doc = await create_document(
            session,
            ctx,
            title=_title_from_filename(filename),
            filename=handle,
            file_size=len(data),
            document_id=document_id,
        )
    except Exception:
        # No row points at the blob; drop it before surfacing the error
        await store.delete(handle)
        raise

    scheduler.submit(IngestionJob(document_id=doc.id, user_id=ctx.user_id, source=handle))
    logger.info(f"Uploaded document {doc.id} ({len(data)} bytes)")
    return DocumentOut.model_validate(doc, from_attributes=True)


@router.get("", response_model=DocumentListResponse)
async def list_documents_endpoint(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentListResponse:
    """List the caller's documents, newest first."""
    docs = await list_documents(session, ctx)
    return DocumentListResponse(
        documents=[DocumentOut.model_validate(doc, from_attributes=True) for doc in docs]
    )


@router.get("/{document_id}", response_model=DocumentOut)
async def get_document(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentOut:
    """Get one document's metadata."""
    try:
        doc = await get_owned_document(session, document_id, ctx)
    except DocumentNotFoundError as e:
        raise _not_found(e) from e
    return DocumentOut.model_validate(doc, from_attributes=True)


@router.get("/{document_id}/status", response_model=DocumentStatusOut)
async def get_document_status(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentStatusOut:
    """Ingestion status for polling; the enum value and nothing else."""
    try:
        doc = await get_owned_document(session, document_id, ctx)
    except DocumentNotFoundError as e:
        raise _not_found(e) from e
    return DocumentStatusOut(ingestion_status=IngestionStatus(doc.ingestion_status))


@router.get("/{document_id}/file")
async def get_document_file(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    store: Annotated[BlobStore, Depends(get_blob_store)],
) -> Response:
    """Serve the stored PDF inline for the viewer.

    Raises:
        HTTPException: 404 if the document is not the caller's or its file is gone
    """
    try:
        doc = await get_owned_document(session, document_id, ctx)
    except DocumentNotFoundError as e:
        raise _not_found(e) from e

    try:
        data = await store.get(doc.filename)
    except BlobNotFoundError as e:
        logger.warning(f"Blob missing for document {document_id}: {e}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found") from e

    return Response(
        content=data,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'inline; filename="{quote(doc.title)}.pdf"',
            "Cache-Control": "private, max-age=3600",
        },
    )


@router.patch("/{document_id}", response_model=DocumentOut)
async def patch_document(
    document_id: uuid.UUID,
    request: UpdateDocumentRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentOut:
    """Rename a document and/or save the reading position."""
    try:
        doc = await update_document(
            session, document_id, ctx, title=request.title, last_page=request.last_page
        )
    except DocumentNotFoundError as e:
        raise _not_found(e) from e
    return DocumentOut.model_validate(doc, from_attributes=True)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document_endpoint(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    store: Annotated[BlobStore, Depends(get_blob_store)],
) -> Response:
    """Delete a document with its chunks and conversations, then its blob."""
    try:
        doc = await delete_document(session, document_id, ctx)
    except DocumentNotFoundError as e:
        raise _not_found(e) from e

    try:
        await store.delete(doc.filename)
    except OSError as e:
        logger.warning(f"Could not remove blob for document {document_id}: {e}")

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{document_id}/ingest", response_model=DocumentStatusOut, status_code=status.HTTP_202_ACCEPTED
)
async def retry_ingestion(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    scheduler: Annotated[IngestionScheduler, Depends(get_scheduler)],
) -> DocumentStatusOut:
    """Re-run ingestion for a failed document.

    Raises:
        HTTPException: 404 if not found, 409 if the document is not failed
    """
    try:
        doc = await reset_for_retry(session, document_id, ctx)
    except DocumentNotFoundError as e:
        raise _not_found(e) from e
    except InvalidStatusTransition as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Only failed documents can be re-ingested (status is {e.current})",
        ) from e

    scheduler.submit(IngestionJob(document_id=doc.id, user_id=ctx.user_id, source=doc.filename))
    return DocumentStatusOut(ingestion_status=IngestionStatus(doc.ingestion_status))
