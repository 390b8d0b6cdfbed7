"""Retrieval tools exposed to the chat model, with structured call logging."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdfchat.docs.retriever import page_lookup, semantic_lookup
from pdfchat.errors import ToolExecutionError
from pdfchat.llm.client import Embedder
from pdfchat.models.chat import ToolCall, ToolState
from pdfchat.models.documents import RetrievalResult
from pdfchat.models.tools import JsonValue, ToolCallLog
from pdfchat.utils.logging import StructuredToolLogger
from pdfchat.utils.metrics import PrometheusIngestionMetrics

logger = logging.getLogger(__name__)

PAGE_SEARCH = "pageSearch"
SEMANTIC_SEARCH = "semanticSearch"


class PageSearchInput(BaseModel):
    page: int = Field(..., ge=1, description="1-based page number")


class SemanticSearchInput(BaseModel):
    query: str = Field(..., min_length=1, description="Topic or question to search for")


TOOL_SPECS: list[dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": PAGE_SEARCH,
            "description": (
                "Get the content of a specific page of the document. Use this when the "
                "user asks about a particular page."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "page": {"type": "integer", "minimum": 1, "description": "Page number"},
                },
                "required": ["page"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": SEMANTIC_SEARCH,
            "description": (
                "Find the passages of the document most related to a topic or question. "
                "Use this for general questions about the document's content."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search query"},
                },
                "required": ["query"],
            },
        },
    },
]


@dataclass
class ToolExecution:
    """Settled tool call: what the model sees plus the log entry."""

    call: ToolCall
    output: dict[str, Any]
    state: ToolState
    log: ToolCallLog


class DocumentToolbox:
    """Runs retrieval tools for one document on behalf of its owner.

    execute() never raises. Unknown tools, invalid arguments and failures
    inside a tool come back as {"error": ...} so the model can adapt.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        embedder: Embedder,
        document_id: UUID,
        user_id: UUID,
        top_k: int = 3,
        conversation_id: UUID | None = None,
        tool_logger: StructuredToolLogger | None = None,
        metrics: PrometheusIngestionMetrics | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._embedder = embedder
        self.document_id = document_id
        self.user_id = user_id
        self.top_k = top_k
        self.conversation_id = conversation_id
        self._tool_logger = tool_logger or StructuredToolLogger()
        self._metrics = metrics or PrometheusIngestionMetrics()

    async def execute(self, call: ToolCall) -> ToolExecution:
        """Run one tool call with timing and structured logging."""
        started_at = datetime.now(UTC)
        input_summary: dict[str, JsonValue] = {}
        state: ToolState = "output-available"

        try:
            result = await self._dispatch(call, input_summary)
            output = result.to_tool_output()
            error = result.error
        except (ToolExecutionError, ValidationError) as e:
            state = "output-error"
            error = str(e) if isinstance(e, ToolExecutionError) else _validation_message(e)
            output = {"error": error}
        except Exception as e:
            logger.exception(f"[chat] tool {call.name} crashed")
            state = "output-error"
            error = f"{call.name} failed: {type(e).__name__}"
            output = {"error": error}

        finished_at = datetime.now(UTC)
        entry = ToolCallLog(
            name=call.name,
            tool_call_id=call.id,
            started_at=started_at,
            finished_at=finished_at,
            duration_ms=int((finished_at - started_at).total_seconds() * 1000),
            success=error is None,
            error=error,
            input_summary=input_summary,
            output_summary={"results": len(output.get("results", []))},
        )
        self._tool_logger.log_call(entry, self.conversation_id)
        outcome = "error" if state == "output-error" else ("found" if error is None else "empty")
        self._metrics.record_tool_call(call.name, outcome)
        return ToolExecution(call=call, output=output, state=state, log=entry)

    async def _dispatch(
        self, call: ToolCall, input_summary: dict[str, JsonValue]
    ) -> RetrievalResult:
        if call.name == PAGE_SEARCH:
            page_args = PageSearchInput.model_validate(call.arguments)
            input_summary["page"] = page_args.page
            async with self._session_factory() as session:
                return await page_lookup(
                    session,
                    document_id=self.document_id,
                    user_id=self.user_id,
                    page=page_args.page,
                )

        if call.name == SEMANTIC_SEARCH:
            search_args = SemanticSearchInput.model_validate(call.arguments)
            input_summary["query_length"] = len(search_args.query)
            async with self._session_factory() as session:
                return await semantic_lookup(
                    session,
                    self._embedder,
                    document_id=self.document_id,
                    user_id=self.user_id,
                    query=search_args.query,
                    limit=self.top_k,
                )

        raise ToolExecutionError(f"Unknown tool: {call.name}")


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "input"
    return f"Invalid arguments ({field}): {first['msg']}"
