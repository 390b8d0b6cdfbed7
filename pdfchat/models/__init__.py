"""Models package - re-exports for convenience."""

from pdfchat.models.chat import (
    ChatRequest,
    ConversationDetail,
    ConversationOut,
    MessageOut,
    MessagePart,
    ModelStep,
    TextPart,
    ToolCall,
    ToolInvocationPart,
    UIMessage,
    dump_parts,
    load_parts,
)
from pdfchat.models.documents import (
    ALLOWED_TRANSITIONS,
    ChunkMatch,
    DocumentOut,
    DocumentStatusOut,
    IngestionStatus,
    PageGroup,
    RetrievalResult,
    can_transition,
)
from pdfchat.models.events import (
    ChatEvent,
    ErrorEvent,
    FinishEvent,
    TextEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from pdfchat.models.tools import JsonValue, ToolCallLog

__all__ = [
    # Chat
    "ChatRequest",
    "ConversationDetail",
    "ConversationOut",
    "MessageOut",
    "MessagePart",
    "ModelStep",
    "TextPart",
    "ToolCall",
    "ToolInvocationPart",
    "UIMessage",
    "dump_parts",
    "load_parts",
    # Documents
    "ALLOWED_TRANSITIONS",
    "ChunkMatch",
    "DocumentOut",
    "DocumentStatusOut",
    "IngestionStatus",
    "PageGroup",
    "RetrievalResult",
    "can_transition",
    # Events
    "ChatEvent",
    "ErrorEvent",
    "FinishEvent",
    "TextEvent",
    "ToolCallEvent",
    "ToolResultEvent",
    # Tools
    "JsonValue",
    "ToolCallLog",
]
