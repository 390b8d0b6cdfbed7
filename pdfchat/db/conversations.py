"""Conversation and message persistence."""

from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pdfchat.db.context import RequestContext
from pdfchat.db.documents import get_owned_document
from pdfchat.db.models import Conversation, Message, utcnow
from pdfchat.errors import ConversationNotFoundError, DocumentNotReadyError
from pdfchat.models.documents import IngestionStatus

DEFAULT_CONVERSATION_TITLE = "New conversation"


async def create_conversation(
    session: AsyncSession, document_id: UUID, ctx: RequestContext
) -> Conversation:
    """Open a conversation on a ready document.

    Raises:
        DocumentNotFoundError: If the document is absent or not owned
        DocumentNotReadyError: If ingestion has not finished
    """
    doc = await get_owned_document(session, document_id, ctx)
    if doc.ingestion_status != IngestionStatus.ready.value:
        raise DocumentNotReadyError(f"Document {document_id} is not ready")

    now = utcnow()
    conversation = Conversation(
        document_id=document_id,
        user_id=ctx.user_id,
        title=DEFAULT_CONVERSATION_TITLE,
        created_at=now,
        updated_at=now,
    )
    session.add(conversation)
    await session.commit()
    return conversation


async def list_conversations(
    session: AsyncSession, document_id: UUID, ctx: RequestContext
) -> list[Conversation]:
    """Caller's conversations on a document, most recently active first."""
    result = await session.execute(
        select(Conversation)
        .where(Conversation.document_id == document_id, Conversation.user_id == ctx.user_id)
        .order_by(Conversation.updated_at.desc())
    )
    return list(result.scalars().all())


async def get_owned_conversation(
    session: AsyncSession,
    conversation_id: UUID,
    ctx: RequestContext,
    *,
    document_id: UUID | None = None,
) -> Conversation:
    """Fetch a conversation owned by the caller, optionally pinned to a document.

    Raises:
        ConversationNotFoundError: If absent, not owned, or on another document
    """
    query = (
        select(Conversation)
        .where(Conversation.id == conversation_id, Conversation.user_id == ctx.user_id)
        .execution_options(populate_existing=True)
    )
    if document_id is not None:
        query = query.where(Conversation.document_id == document_id)

    result = await session.execute(query)
    conversation = result.scalar_one_or_none()
    if conversation is None:
        raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
    return conversation


async def list_messages(session: AsyncSession, conversation_id: UUID) -> list[Message]:
    """Messages of a conversation in creation order."""
    result = await session.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc())
    )
    return list(result.scalars().all())


async def delete_conversation(
    session: AsyncSession, conversation_id: UUID, ctx: RequestContext
) -> None:
    """Delete a conversation and its messages."""
    await get_owned_conversation(session, conversation_id, ctx)
    await session.execute(
        delete(Conversation).where(
            Conversation.id == conversation_id, Conversation.user_id == ctx.user_id
        )
    )
    await session.commit()


async def save_user_message(
    session: AsyncSession,
    conversation: Conversation,
    text: str,
    *,
    title_length: int = 80,
) -> Message:
    """Persist a user turn and apply the first-message title rule.

    The title is taken from the message only when it is the conversation's
    sole message after insertion, so it is assigned exactly once.
    """
    message = Message(
        conversation_id=conversation.id,
        role="user",
        content=text,
        created_at=utcnow(),
    )
    session.add(message)
    await session.flush()

    result = await session.execute(
        select(func.count())
        .select_from(Message)
        .where(Message.conversation_id == conversation.id)
    )
    if result.scalar_one() == 1:
        await session.execute(
            update(Conversation)
            .where(Conversation.id == conversation.id)
            .values(title=text[:title_length], updated_at=utcnow())
        )

    await session.commit()
    return message


async def save_assistant_message(
    session: AsyncSession,
    conversation_id: UUID,
    *,
    text: str,
    parts: list[dict[str, object]],
) -> Message:
    """Persist an assistant turn with its replayable trace and bump the thread."""
    message = Message(
        conversation_id=conversation_id,
        role="assistant",
        content=text,
        parts=parts,
        created_at=utcnow(),
    )
    session.add(message)
    await session.execute(
        update(Conversation).where(Conversation.id == conversation_id).values(updated_at=utcnow())
    )
    await session.commit()
    return message
