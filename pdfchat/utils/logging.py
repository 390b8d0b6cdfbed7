"""Structured logging for ingestion stages and chat tool calls."""

import logging
from typing import Any
from uuid import UUID

from pdfchat.models.tools import ToolCallLog

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Install a basic root handler if the host has not configured one."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


class StructuredIngestionLogger:
    """Structured logger for per-group and per-batch pipeline telemetry."""

    def log_group(
        self,
        document_id: UUID,
        group_index: int,
        total_groups: int,
        *,
        pages: int,
        payload_kb: int,
        model_ms: float,
        db_ms: float,
        content_length: int,
    ) -> None:
        """Log one extraction group."""
        log_data: dict[str, Any] = {
            "document_id": str(document_id),
            "group_index": group_index,
            "pages": pages,
            "payload_kb": payload_kb,
            "model_ms": round(model_ms, 2),
            "db_ms": round(db_ms, 2),
            "content_length": content_length,
        }
        suffix = " (empty)" if content_length == 0 else ""
        logger.info(
            f"[extract] group {group_index + 1}/{total_groups} done{suffix}",
            extra={"structured": log_data},
        )

    def log_batch(
        self,
        document_id: UUID,
        batch_index: int,
        total_batches: int,
        *,
        chunks: int,
        api_ms: float,
        db_ms: float,
    ) -> None:
        """Log one embedding batch."""
        log_data: dict[str, Any] = {
            "document_id": str(document_id),
            "batch_index": batch_index,
            "chunks": chunks,
            "api_ms": round(api_ms, 2),
            "db_ms": round(db_ms, 2),
        }
        logger.info(
            f"[embed] batch {batch_index + 1}/{total_batches} done",
            extra={"structured": log_data},
        )


class StructuredToolLogger:
    """Structured logger for chat tool execution."""

    def log_call(self, entry: ToolCallLog, conversation_id: UUID | None = None) -> None:
        """Log a finished tool call."""
        log_data: dict[str, Any] = entry.model_dump(mode="json")
        if conversation_id is not None:
            log_data["conversation_id"] = str(conversation_id)

        log_msg = f"[chat] tool {entry.name} - {'success' if entry.success else 'error'}"

        if entry.success:
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
