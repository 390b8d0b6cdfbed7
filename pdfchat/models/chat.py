"""Conversation, message and tool-call models."""

from datetime import datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

ToolState = Literal["output-available", "output-error"]

_IMAGE_PREFIXES = ("data:image/png;base64,", "data:image/jpeg;base64,")


class _PartBase(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TextPart(_PartBase):
    """Plain text segment of a message."""

    type: Literal["text"] = "text"
    text: str


class ToolInvocationPart(_PartBase):
    """One tool call made while producing an assistant turn."""

    type: Literal["tool-invocation"] = "tool-invocation"
    tool_call_id: str
    tool_name: str
    state: ToolState = "output-available"
    input: dict[str, Any] = Field(default_factory=dict)


MessagePart = Annotated[TextPart | ToolInvocationPart, Field(discriminator="type")]

_parts_adapter: TypeAdapter[list[MessagePart]] = TypeAdapter(list[MessagePart])


def dump_parts(parts: list[TextPart | ToolInvocationPart]) -> list[dict[str, Any]]:
    """Serialise parts for opaque JSON storage."""
    return _parts_adapter.dump_python(parts, mode="json", by_alias=True)


def load_parts(raw: list[dict[str, Any]] | None) -> list[TextPart | ToolInvocationPart] | None:
    """Deserialise stored parts back into the same variant set."""
    if raw is None:
        return None
    return _parts_adapter.validate_python(raw)


class UIMessage(_PartBase):
    """Message as sent by the chat client.

    Either parts or content carries the text; parts win when both are present.
    """

    id: str | None = None
    role: Literal["user", "assistant", "system"]
    parts: list[MessagePart] | None = None
    content: str | None = None

    def text(self) -> str:
        """Join text parts, falling back to the content field."""
        if self.parts:
            texts = [part.text for part in self.parts if isinstance(part, TextPart)]
            if texts:
                return " ".join(texts)
        return self.content or ""


class ChatRequest(_PartBase):
    """Body of POST /documents/{id}/chat."""

    messages: list[UIMessage] = Field(..., min_length=1)
    conversation_id: UUID
    current_page: int | None = Field(None, ge=1)
    image: str | None = Field(
        None, description="Attached page-region image as a data URL (image/png or image/jpeg)"
    )

    @field_validator("image")
    @classmethod
    def _check_image(cls, value: str | None) -> str | None:
        if value is not None and not value.startswith(_IMAGE_PREFIXES):
            raise ValueError("image must be a base64 PNG or JPEG data URL")
        return value

    def last_user_message(self) -> UIMessage | None:
        """Most recent user turn, which is the one being answered."""
        for message in reversed(self.messages):
            if message.role == "user":
                return message
        return None


class ConversationOut(_PartBase):
    """Conversation summary."""

    id: UUID
    document_id: UUID
    title: str
    created_at: datetime
    updated_at: datetime


class MessageOut(_PartBase):
    """Persisted message."""

    id: UUID
    conversation_id: UUID
    role: Literal["user", "assistant"]
    content: str
    parts: list[MessagePart] | None = None
    created_at: datetime


class ConversationDetail(ConversationOut):
    """Conversation with its ordered messages."""

    messages: list[MessageOut]


class ToolCall(BaseModel):
    """Structured tool request produced by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ModelStep(BaseModel):
    """One generative-model response inside the tool loop."""

    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
