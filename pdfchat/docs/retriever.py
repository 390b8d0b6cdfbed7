"""Document retriever - page-range lookup and vector similarity search."""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from pdfchat.db.chunks import chunks_covering_page, nearest_chunks
from pdfchat.llm.client import Embedder
from pdfchat.models.documents import ChunkMatch, RetrievalResult

logger = logging.getLogger(__name__)

PAGE_NOT_FOUND = "Page not in range: no content found for this page number."
QUERY_NOT_FOUND = "No content found for this query."


async def page_lookup(
    session: AsyncSession, *, document_id: UUID, user_id: UUID, page: int
) -> RetrievalResult:
    """Every chunk of the document whose page range contains page.

    Returns:
        Matches in ordinal order, or the no-content error when nothing covers page
    """
    chunks = await chunks_covering_page(
        session, document_id=document_id, user_id=user_id, page=page
    )
    if not chunks:
        return RetrievalResult.no_content(PAGE_NOT_FOUND)
    return RetrievalResult(
        results=[
            ChunkMatch(content=c.content, start_page=c.start_page, end_page=c.end_page)
            for c in chunks
        ]
    )


async def semantic_lookup(
    session: AsyncSession,
    embedder: Embedder,
    *,
    document_id: UUID,
    user_id: UUID,
    query: str,
    limit: int = 3,
) -> RetrievalResult:
    """Top chunks of the document by cosine similarity to the query.

    The query is embedded with the same model and width as the chunks.
    Chunks without an embedding are never candidates.

    Returns:
        At most limit matches, most similar first, or the no-content error
        when the document has no embedded chunks
    """
    query_vector = await embedder.embed(query)
    ranked = await nearest_chunks(
        session,
        document_id=document_id,
        user_id=user_id,
        query_vector=query_vector,
        limit=limit,
    )
    if not ranked:
        return RetrievalResult.no_content(QUERY_NOT_FOUND)

    logger.debug(
        f"[chat] semantic lookup top similarity {ranked[0][1]:.3f} over {len(ranked)} chunks"
    )
    return RetrievalResult(
        results=[
            ChunkMatch(content=c.content, start_page=c.start_page, end_page=c.end_page)
            for c, _ in ranked
        ]
    )
