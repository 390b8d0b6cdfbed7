"""Unit tests for message parts, chat request parsing and stream events."""

import uuid

import pytest
from pydantic import ValidationError

from pdfchat.models.chat import (
    ChatRequest,
    TextPart,
    ToolInvocationPart,
    UIMessage,
    dump_parts,
    load_parts,
)
from pdfchat.models.documents import ChunkMatch, RetrievalResult
from pdfchat.models.events import FinishEvent, ToolCallEvent


def test_parts_keep_their_variant_through_storage() -> None:
    parts = [
        ToolInvocationPart(tool_call_id="call_1", tool_name="pageSearch", input={"page": 3}),
        TextPart(text="Page 3 covers setup [Page 3]"),
    ]

    stored = dump_parts(parts)
    restored = load_parts(stored)

    assert stored[0] == {
        "type": "tool-invocation",
        "toolCallId": "call_1",
        "toolName": "pageSearch",
        "state": "output-available",
        "input": {"page": 3},
    }
    assert stored[1] == {"type": "text", "text": "Page 3 covers setup [Page 3]"}
    assert restored is not None
    assert isinstance(restored[0], ToolInvocationPart)
    assert isinstance(restored[1], TextPart)
    assert restored[0].input == {"page": 3}


def test_load_parts_passes_none_through() -> None:
    assert load_parts(None) is None


def test_unknown_part_type_rejected() -> None:
    with pytest.raises(ValidationError):
        load_parts([{"type": "reasoning", "text": "hmm"}])


def test_ui_message_text_prefers_parts_over_content() -> None:
    msg = UIMessage(
        role="user",
        parts=[TextPart(text="What is"), TextPart(text="on page 2?")],
        content="ignored",
    )
    assert msg.text() == "What is on page 2?"


def test_ui_message_text_falls_back_to_content() -> None:
    assert UIMessage(role="user", content="hello").text() == "hello"
    assert UIMessage(role="user").text() == ""


def test_chat_request_accepts_camel_case_body() -> None:
    conversation_id = uuid.uuid4()
    request = ChatRequest.model_validate(
        {
            "messages": [
                {"role": "user", "content": "first"},
                {"role": "assistant", "content": "answer"},
                {"role": "user", "parts": [{"type": "text", "text": "second"}]},
            ],
            "conversationId": str(conversation_id),
            "currentPage": 4,
        }
    )

    assert request.conversation_id == conversation_id
    assert request.current_page == 4
    last = request.last_user_message()
    assert last is not None
    assert last.text() == "second"


def test_chat_request_requires_messages() -> None:
    with pytest.raises(ValidationError):
        ChatRequest.model_validate({"messages": [], "conversationId": str(uuid.uuid4())})


def test_chat_request_rejects_non_image_data_url() -> None:
    with pytest.raises(ValidationError, match="data URL"):
        ChatRequest.model_validate(
            {
                "messages": [{"role": "user", "content": "hi"}],
                "conversationId": str(uuid.uuid4()),
                "image": "https://example.com/page.png",
            }
        )


def test_retrieval_result_tool_output_hides_internal_fields() -> None:
    result = RetrievalResult(results=[ChunkMatch(content="text", start_page=6, end_page=10)])
    assert result.found
    assert result.to_tool_output() == {
        "results": [{"content": "text", "startPage": 6, "endPage": 10}]
    }


def test_retrieval_result_no_content_is_an_error() -> None:
    result = RetrievalResult.no_content("No content found for this query.")
    assert not result.found
    assert result.to_tool_output() == {"error": "No content found for this query."}


def test_events_render_as_sse_frames() -> None:
    frame = ToolCallEvent(
        step=1, tool_call_id="c1", tool_name="semanticSearch", input={"query": "q"}
    ).to_sse()
    assert frame.startswith("event: tool-call\ndata: ")
    assert '"toolName":"semanticSearch"' in frame
    assert frame.endswith("\n\n")

    finish = FinishEvent(message_id="m1", text="done", steps=2, finish_reason="stop").to_sse()
    assert '"finishReason":"stop"' in finish
