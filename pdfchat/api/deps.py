"""Service dependencies resolved from application state.

Routes depend on these rather than on app.state directly so tests can swap
them through app.dependency_overrides.
"""

from fastapi import Request

from pdfchat.docs.storage import BlobStore
from pdfchat.orchestration.chat import ChatService
from pdfchat.orchestration.ingestion import IngestionScheduler


def get_scheduler(request: Request) -> IngestionScheduler:
    """Process-wide ingestion scheduler."""
    return request.app.state.scheduler  # type: ignore[no-any-return]


def get_blob_store(request: Request) -> BlobStore:
    """Storage for uploaded PDFs."""
    return request.app.state.blob_store  # type: ignore[no-any-return]


def get_chat_service(request: Request) -> ChatService:
    """Chat service bound to the configured model client."""
    return request.app.state.chat_service  # type: ignore[no-any-return]
