"""Chat endpoint - answer a user turn as a server-sent event stream."""

import uuid
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from pdfchat.api.auth import get_current_context
from pdfchat.api.deps import get_chat_service
from pdfchat.db.context import RequestContext
from pdfchat.db.engine import get_session
from pdfchat.errors import ConversationNotFoundError, DocumentNotFoundError, InvalidChatRequestError
from pdfchat.models.chat import ChatRequest
from pdfchat.orchestration.chat import ChatService, ChatTurn

router = APIRouter(tags=["chat"])


@router.post("/documents/{document_id}/chat")
async def chat(
    document_id: uuid.UUID,
    request: ChatRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
    service: Annotated[ChatService, Depends(get_chat_service)],
) -> StreamingResponse:
    """Stream the assistant's answer.

    Validation and the user-message write happen before the stream opens,
    so ownership and request errors still map to plain HTTP statuses.

    Events: text, tool-call, tool-result, then finish (or error).
    """
    try:
        turn = await service.start_turn(session, ctx, document_id, request)
    except (DocumentNotFoundError, ConversationNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except InvalidChatRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return StreamingResponse(
        _event_stream(service, turn),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


async def _event_stream(service: ChatService, turn: ChatTurn) -> AsyncGenerator[str, None]:
    async for event in service.stream(turn):
        yield event.to_sse()
