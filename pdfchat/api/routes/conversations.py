"""Conversation endpoints - list, create, read with messages, delete."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from pdfchat.api.auth import get_current_context
from pdfchat.db.context import RequestContext
from pdfchat.db.conversations import (
    create_conversation,
    delete_conversation,
    get_owned_conversation,
    list_conversations,
    list_messages,
)
from pdfchat.db.documents import get_owned_document
from pdfchat.db.engine import get_session
from pdfchat.errors import ConversationNotFoundError, DocumentNotFoundError, DocumentNotReadyError
from pdfchat.models.chat import ConversationDetail, ConversationOut, MessageOut
from pdfchat.models.documents import CamelModel

router = APIRouter(tags=["conversations"])


class ConversationListResponse(CamelModel):
    """Response for GET /documents/{id}/conversations."""

    conversations: list[ConversationOut]


@router.get(
    "/documents/{document_id}/conversations", response_model=ConversationListResponse
)
async def list_conversations_endpoint(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ConversationListResponse:
    """Conversations on a document, most recently active first."""
    try:
        await get_owned_document(session, document_id, ctx)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    conversations = await list_conversations(session, document_id, ctx)
    return ConversationListResponse(
        conversations=[ConversationOut.model_validate(c, from_attributes=True) for c in conversations]
    )


@router.post(
    "/documents/{document_id}/conversations",
    response_model=ConversationOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation_endpoint(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ConversationOut:
    """Start a conversation; the document must have finished ingestion."""
    try:
        conversation = await create_conversation(session, document_id, ctx)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except DocumentNotReadyError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return ConversationOut.model_validate(conversation, from_attributes=True)


@router.get("/conversations/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(
    conversation_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ConversationDetail:
    """Conversation with its messages in creation order."""
    try:
        conversation = await get_owned_conversation(session, conversation_id, ctx)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    messages = await list_messages(session, conversation_id)
    return ConversationDetail(
        id=conversation.id,
        document_id=conversation.document_id,
        title=conversation.title,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        messages=[MessageOut.model_validate(m, from_attributes=True) for m in messages],
    )


@router.delete("/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation_endpoint(
    conversation_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Response:
    """Delete a conversation and its messages."""
    try:
        await delete_conversation(session, conversation_id, ctx)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
