"""Chat orchestration - bounded tool-calling loop and turn persistence."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Literal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdfchat.db.context import RequestContext
from pdfchat.db.conversations import get_owned_conversation, save_assistant_message, save_user_message
from pdfchat.db.documents import get_owned_document
from pdfchat.errors import InvalidChatRequestError
from pdfchat.llm.client import ChatMessage, ChatModel, Embedder
from pdfchat.models.chat import ChatRequest, TextPart, ToolInvocationPart, dump_parts
from pdfchat.models.events import (
    ChatEvent,
    ErrorEvent,
    FinishEvent,
    TextEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from pdfchat.orchestration.prompts import build_system_prompt
from pdfchat.orchestration.tools import TOOL_SPECS, DocumentToolbox

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 5


class ToolLoop:
    """Multi-step model/tool loop with a hard step cap.

    A step is one model call. Tool calls requested in a step run
    concurrently, and the next step starts only once all of them have
    settled. The loop stops at the first step without tool calls or after
    max_steps, whichever comes first.

    After run() is exhausted, text/parts/steps/finish_reason describe the
    turn.
    """

    def __init__(
        self,
        model: ChatModel,
        toolbox: DocumentToolbox,
        *,
        max_steps: int = DEFAULT_MAX_STEPS,
        tools: list[dict[str, Any]] | None = None,
    ) -> None:
        if max_steps < 1:
            raise ValueError(f"max_steps must be >= 1, got {max_steps}")
        self._model = model
        self._toolbox = toolbox
        self._tools = TOOL_SPECS if tools is None else tools
        self.max_steps = max_steps
        self.text = ""
        self.parts: list[TextPart | ToolInvocationPart] = []
        self.steps = 0
        self.finish_reason: Literal["stop", "step-limit"] = "step-limit"

    async def run(self, messages: list[ChatMessage]) -> AsyncIterator[ChatEvent]:
        """Drive the loop, yielding events as they happen."""
        history = list(messages)

        for step in range(1, self.max_steps + 1):
            self.steps = step
            result = await self._model.complete(messages=history, tools=self._tools)

            if result.text:
                # Last available text wins if the step cap cuts the loop short
                self.text = result.text
                self.parts.append(TextPart(text=result.text))
                yield TextEvent(step=step, text=result.text)

            if not result.tool_calls:
                self.finish_reason = "stop"
                return

            history.append(
                {
                    "role": "assistant",
                    "content": result.text or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                        }
                        for call in result.tool_calls
                    ],
                }
            )
            for call in result.tool_calls:
                yield ToolCallEvent(
                    step=step, tool_call_id=call.id, tool_name=call.name, input=call.arguments
                )

            executions = await asyncio.gather(
                *(self._toolbox.execute(call) for call in result.tool_calls)
            )

            for execution in executions:
                self.parts.append(
                    ToolInvocationPart(
                        tool_call_id=execution.call.id,
                        tool_name=execution.call.name,
                        state=execution.state,
                        input=execution.call.arguments,
                    )
                )
                history.append(
                    {
                        "role": "tool",
                        "tool_call_id": execution.call.id,
                        "content": json.dumps(execution.output),
                    }
                )
                yield ToolResultEvent(
                    step=step,
                    tool_call_id=execution.call.id,
                    tool_name=execution.call.name,
                    output=execution.output,
                )

        logger.warning(f"[chat] step limit {self.max_steps} reached")


@dataclass
class ChatTurn:
    """A validated user turn, persisted and ready to answer."""

    document_id: UUID
    user_id: UUID
    conversation_id: UUID
    messages: list[ChatMessage]


def build_model_messages(request: ChatRequest) -> list[ChatMessage]:
    """Convert client turns to model messages, attaching the image to the last user turn."""
    messages: list[ChatMessage] = [
        {"role": "system", "content": build_system_prompt(request.current_page)}
    ]
    last_user = request.last_user_message()

    for message in request.messages:
        if message.role == "system":
            continue
        text = message.text()
        if message is last_user and request.image:
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": text},
                        {"type": "image_url", "image_url": {"url": request.image}},
                    ],
                }
            )
        elif text:
            messages.append({"role": message.role, "content": text})

    return messages


class ChatService:
    """Answers chat turns against one document's chunks."""

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        model: ChatModel,
        embedder: Embedder,
        max_steps: int = DEFAULT_MAX_STEPS,
        top_k: int = 3,
        title_length: int = 80,
    ) -> None:
        self._session_factory = session_factory
        self._model = model
        self._embedder = embedder
        self.max_steps = max_steps
        self.top_k = top_k
        self.title_length = title_length

    async def start_turn(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        document_id: UUID,
        request: ChatRequest,
    ) -> ChatTurn:
        """Check ownership, persist the user message and apply the title rule.

        Raises:
            DocumentNotFoundError: Document absent or not owned
            ConversationNotFoundError: Conversation absent, not owned or on another document
            InvalidChatRequestError: No user message with text or image
        """
        await get_owned_document(session, document_id, ctx)
        conversation = await get_owned_conversation(
            session, request.conversation_id, ctx, document_id=document_id
        )

        last_user = request.last_user_message()
        if last_user is None:
            raise InvalidChatRequestError("Request has no user message")
        text = last_user.text()
        if not text and not request.image:
            raise InvalidChatRequestError("User message is empty")

        await save_user_message(session, conversation, text, title_length=self.title_length)
        return ChatTurn(
            document_id=document_id,
            user_id=ctx.user_id,
            conversation_id=conversation.id,
            messages=build_model_messages(request),
        )

    async def stream(self, turn: ChatTurn) -> AsyncIterator[ChatEvent]:
        """Run the tool loop and persist the assistant message when it finishes.

        A failed model call ends the stream with an ErrorEvent and nothing
        is persisted for the assistant.
        """
        toolbox = DocumentToolbox(
            session_factory=self._session_factory,
            embedder=self._embedder,
            document_id=turn.document_id,
            user_id=turn.user_id,
            top_k=self.top_k,
            conversation_id=turn.conversation_id,
        )
        loop = ToolLoop(self._model, toolbox, max_steps=self.max_steps)

        try:
            async for event in loop.run(turn.messages):
                yield event
        except Exception as e:
            logger.exception(f"[chat] turn failed in conversation {turn.conversation_id}")
            yield ErrorEvent(message=f"The assistant could not answer ({type(e).__name__}).")
            return

        async with self._session_factory() as session:
            message = await save_assistant_message(
                session, turn.conversation_id, text=loop.text, parts=dump_parts(loop.parts)
            )

        logger.info(
            f"[chat] conversation {turn.conversation_id}: {loop.steps} steps, {loop.finish_reason}"
        )
        yield FinishEvent(
            message_id=str(message.id),
            text=loop.text,
            steps=loop.steps,
            finish_reason=loop.finish_reason,
        )
