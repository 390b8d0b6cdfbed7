"""Chat stream event models - what the client sees while a turn runs."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Event(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_sse(self) -> str:
        """Render as a server-sent event frame."""
        return f"event: {self.type}\ndata: {self.model_dump_json(by_alias=True)}\n\n"  # type: ignore[attr-defined]


class TextEvent(_Event):
    """Text produced by one model step."""

    type: Literal["text"] = "text"
    step: int = Field(..., ge=1)
    text: str


class ToolCallEvent(_Event):
    """Model requested a tool."""

    type: Literal["tool-call"] = "tool-call"
    step: int = Field(..., ge=1)
    tool_call_id: str
    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultEvent(_Event):
    """Tool finished; output is what the model will see."""

    type: Literal["tool-result"] = "tool-result"
    step: int = Field(..., ge=1)
    tool_call_id: str
    tool_name: str
    output: dict[str, Any]


class FinishEvent(_Event):
    """Terminal event carrying the persisted assistant message id."""

    type: Literal["finish"] = "finish"
    message_id: str
    text: str
    steps: int
    finish_reason: Literal["stop", "step-limit"]


class ErrorEvent(_Event):
    """Turn aborted before an answer could be produced."""

    type: Literal["error"] = "error"
    message: str


ChatEvent = Annotated[
    TextEvent | ToolCallEvent | ToolResultEvent | FinishEvent | ErrorEvent,
    Field(discriminator="type"),
]
