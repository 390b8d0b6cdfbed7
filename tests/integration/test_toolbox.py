"""Integration tests for the retrieval toolbox."""

import uuid

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdfchat.db.chunks import set_embeddings, upsert_chunk
from pdfchat.db.context import RequestContext
from pdfchat.db.documents import create_document
from pdfchat.docs.retriever import PAGE_NOT_FOUND
from pdfchat.llm.client import DeterministicStubClient
from pdfchat.models.chat import ToolCall
from pdfchat.orchestration.tools import PAGE_SEARCH, SEMANTIC_SEARCH, DocumentToolbox


class RecordingToolLogger:
    def __init__(self) -> None:
        self.entries: list[object] = []

    def log_call(self, entry: object, conversation_id: object = None) -> None:
        self.entries.append(entry)


@pytest.fixture
def tool_logger() -> RecordingToolLogger:
    return RecordingToolLogger()


@pytest_asyncio.fixture
async def toolbox_for(
    session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    ctx: RequestContext,
    tool_logger: RecordingToolLogger,
) -> DocumentToolbox:
    embedder = DeterministicStubClient(dimensions=768)
    doc = await create_document(session, ctx, title="Doc", filename="/tmp/doc.pdf", file_size=1)
    texts = ["Intro and motivation.", "Method details.", "Results table."]
    ids = [
        await upsert_chunk(
            session,
            document_id=doc.id,
            user_id=ctx.user_id,
            chunk_index=i,
            start_page=i * 5 + 1,
            end_page=i * 5 + 5,
            content=text,
        )
        for i, text in enumerate(texts)
    ]
    await set_embeddings(session, list(zip(ids, await embedder.embed_many(texts))))

    return DocumentToolbox(
        session_factory=session_factory,
        embedder=embedder,
        document_id=doc.id,
        user_id=ctx.user_id,
        top_k=2,
        tool_logger=tool_logger,  # type: ignore[arg-type]
    )


@pytest.mark.asyncio
async def test_page_search_returns_covering_chunk(
    toolbox_for: DocumentToolbox, tool_logger: RecordingToolLogger
) -> None:
    execution = await toolbox_for.execute(ToolCall(id="c1", name=PAGE_SEARCH, arguments={"page": 7}))

    assert execution.state == "output-available"
    assert execution.output == {
        "results": [{"content": "Method details.", "startPage": 6, "endPage": 10}]
    }
    assert execution.log.success is True
    assert execution.log.tool_call_id == "c1"
    assert execution.log.input_summary == {"page": 7}
    assert tool_logger.entries == [execution.log]


@pytest.mark.asyncio
async def test_page_search_out_of_range_is_explicit(toolbox_for: DocumentToolbox) -> None:
    execution = await toolbox_for.execute(
        ToolCall(id="c2", name=PAGE_SEARCH, arguments={"page": 99})
    )

    assert execution.state == "output-available"
    assert execution.output == {"error": PAGE_NOT_FOUND}
    assert execution.log.success is False


@pytest.mark.asyncio
async def test_semantic_search_caps_results_at_top_k(toolbox_for: DocumentToolbox) -> None:
    execution = await toolbox_for.execute(
        ToolCall(id="c3", name=SEMANTIC_SEARCH, arguments={"query": "Results table."})
    )

    results = execution.output["results"]
    assert len(results) == 2
    assert results[0]["content"] == "Results table."
    # The raw query never reaches the log
    assert execution.log.input_summary == {"query_length": len("Results table.")}


@pytest.mark.asyncio
async def test_invalid_arguments_come_back_as_tool_error(toolbox_for: DocumentToolbox) -> None:
    execution = await toolbox_for.execute(
        ToolCall(id="c4", name=PAGE_SEARCH, arguments={"page": 0})
    )

    assert execution.state == "output-error"
    assert execution.output["error"].startswith("Invalid arguments (page)")


@pytest.mark.asyncio
async def test_unknown_tool_comes_back_as_tool_error(toolbox_for: DocumentToolbox) -> None:
    execution = await toolbox_for.execute(ToolCall(id="c5", name="webSearch", arguments={}))

    assert execution.state == "output-error"
    assert execution.output == {"error": "Unknown tool: webSearch"}


@pytest.mark.asyncio
async def test_toolbox_never_reads_other_users_chunks(
    toolbox_for: DocumentToolbox,
) -> None:
    toolbox_for.user_id = uuid.uuid4()

    execution = await toolbox_for.execute(
        ToolCall(id="c6", name=PAGE_SEARCH, arguments={"page": 1})
    )

    assert execution.output == {"error": PAGE_NOT_FOUND}
