"""Durable stage checkpoints for the ingestion pipeline."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdfchat.db.models import IngestionStep, utcnow

logger = logging.getLogger(__name__)

StepResult = dict[str, Any]


class StepRunner:
    """Runs named stages once per document.

    A stage's JSON result is persisted when it returns. A later pipeline
    attempt that reaches the same stage gets the stored result back instead
    of re-running the work, so a crash after extraction resumes at embedding.
    """

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession], document_id: UUID
    ) -> None:
        self._session_factory = session_factory
        self._document_id = document_id

    async def completed(self, name: str) -> StepResult | None:
        """Stored result of a finished stage, or None."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(IngestionStep.result).where(
                    IngestionStep.document_id == self._document_id,
                    IngestionStep.name == name,
                )
            )
            return result.scalar_one_or_none()

    async def run(self, name: str, fn: Callable[[], Awaitable[StepResult]]) -> StepResult:
        """Run a stage unless it already has a checkpoint.

        Args:
            name: Stage name (unique per document)
            fn: Stage body returning a JSON-serialisable dict

        Returns:
            The stage result, fresh or replayed
        """
        stored = await self.completed(name)
        if stored is not None:
            logger.info(f"[step] {name} already completed for {self._document_id}, skipping")
            return stored

        result = await fn()

        async with self._session_factory() as session:
            session.add(
                IngestionStep(
                    document_id=self._document_id,
                    name=name,
                    result=result,
                    completed_at=utcnow(),
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                # Another run checkpointed the same stage first; theirs stands
                await session.rollback()
                logger.warning(f"[step] {name} checkpoint already present for {self._document_id}")

        return result


async def clear_steps(session: AsyncSession, document_id: UUID) -> None:
    """Drop every checkpoint of a document. The caller commits."""
    await session.execute(delete(IngestionStep).where(IngestionStep.document_id == document_id))
