"""Chunk store - idempotent upserts, embedding fills and retrieval queries."""

from collections.abc import Sequence
from uuid import UUID

import numpy as np
from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from pdfchat.db.models import DocumentChunk, utcnow


def chunk_id_for(document_id: UUID, chunk_index: int) -> str:
    """Deterministic chunk key: same document and group always map to the same row."""
    return f"{document_id}-chunk-{chunk_index}"


def _insert_for(session: AsyncSession):  # type: ignore[no-untyped-def]
    """Pick the dialect insert construct that supports ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Chunk upsert not supported on dialect {dialect!r}")


async def upsert_chunk(
    session: AsyncSession,
    *,
    document_id: UUID,
    user_id: UUID,
    chunk_index: int,
    start_page: int,
    end_page: int,
    content: str,
) -> str:
    """Insert or update the chunk for one page group.

    On conflict content and token_count are replaced and the embedding is
    cleared, so re-running extraction converges on the same rows instead of
    duplicating them and the embed stage picks up any rewritten chunk.

    Returns:
        The chunk id
    """
    chunk_id = chunk_id_for(document_id, chunk_index)
    insert = _insert_for(session)

    stmt = insert(DocumentChunk).values(
        id=chunk_id,
        document_id=document_id,
        user_id=user_id,
        content=content,
        start_page=start_page,
        end_page=end_page,
        chunk_index=chunk_index,
        token_count=len(content),
        created_at=utcnow(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[DocumentChunk.id],
        set_={
            "content": stmt.excluded.content,
            "token_count": stmt.excluded.token_count,
            "embedding": None,
        },
    )
    await session.execute(stmt)
    await session.commit()
    return chunk_id


async def list_chunks(session: AsyncSession, document_id: UUID) -> list[DocumentChunk]:
    """All chunks of a document in ordinal order."""
    result = await session.execute(
        select(DocumentChunk)
        .where(DocumentChunk.document_id == document_id)
        .order_by(DocumentChunk.chunk_index)
    )
    return list(result.scalars().all())


async def list_chunks_missing_embeddings(
    session: AsyncSession, document_id: UUID
) -> list[DocumentChunk]:
    """Chunks whose embedding is absent, in ordinal order."""
    result = await session.execute(
        select(DocumentChunk)
        .where(DocumentChunk.document_id == document_id, DocumentChunk.embedding.is_(None))
        .order_by(DocumentChunk.chunk_index)
    )
    return list(result.scalars().all())


async def set_embeddings(
    session: AsyncSession, assignments: Sequence[tuple[str, Sequence[float]]]
) -> int:
    """Write embeddings for a batch of chunks in one bulk UPDATE by primary key.

    Args:
        session: Async database session
        assignments: (chunk_id, vector) pairs

    Returns:
        Number of rows written
    """
    if not assignments:
        return 0
    await session.execute(
        update(DocumentChunk),
        [{"id": chunk_id, "embedding": list(vector)} for chunk_id, vector in assignments],
    )
    await session.commit()
    return len(assignments)


async def chunks_covering_page(
    session: AsyncSession, *, document_id: UUID, user_id: UUID, page: int
) -> list[DocumentChunk]:
    """Chunks whose [start_page, end_page] contains page."""
    result = await session.execute(
        select(DocumentChunk)
        .where(
            DocumentChunk.document_id == document_id,
            DocumentChunk.user_id == user_id,
            DocumentChunk.start_page <= page,
            DocumentChunk.end_page >= page,
        )
        .order_by(DocumentChunk.chunk_index)
    )
    return list(result.scalars().all())


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine of the angle between two vectors; 0.0 when either is all zeros."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


async def nearest_chunks(
    session: AsyncSession,
    *,
    document_id: UUID,
    user_id: UUID,
    query_vector: Sequence[float],
    limit: int = 3,
) -> list[tuple[DocumentChunk, float]]:
    """Rank a document's embedded chunks by descending cosine similarity.

    PostgreSQL orders with pgvector's cosine distance operator (served by the
    HNSW index). Other dialects rank in process with numpy.

    Returns:
        (chunk, similarity) pairs, at most limit long
    """
    filters = (
        DocumentChunk.document_id == document_id,
        DocumentChunk.user_id == user_id,
        DocumentChunk.embedding.is_not(None),
    )

    if session.get_bind().dialect.name == "postgresql":
        distance = DocumentChunk.embedding.cosine_distance(list(query_vector))
        result = await session.execute(
            select(DocumentChunk, distance.label("distance"))
            .where(*filters)
            .order_by(distance)
            .limit(limit)
        )
        return [(row[0], 1.0 - float(row[1])) for row in result.all()]

    result = await session.execute(select(DocumentChunk).where(*filters))
    scored = [
        (chunk, cosine_similarity(chunk.embedding, query_vector))
        for chunk in result.scalars().all()
    ]
    # Highest similarity first; chunk_index breaks ties deterministically
    scored.sort(key=lambda pair: (-pair[1], pair[0].chunk_index))
    return scored[:limit]
