"""Tool call logging models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

# JSON-serializable value type
JsonValue = str | int | float | bool | None | dict[str, Any] | list[Any]


class ToolCallLog(BaseModel):
    """Log entry for a single retrieval tool call.

    Captures timing, success/failure, and small input/output summaries
    for observability without storing full chunk content.
    """

    name: str = Field(..., description="Tool name (e.g. 'pageSearch', 'semanticSearch')")
    tool_call_id: str = Field(..., description="Model-assigned call id")
    started_at: datetime = Field(..., description="UTC timestamp when call started")
    finished_at: datetime = Field(..., description="UTC timestamp when call finished")
    duration_ms: int = Field(..., description="Duration in milliseconds")
    success: bool = Field(..., description="True if the tool produced results")
    error: str | None = Field(None, description="Error message if the call failed or found nothing")
    input_summary: dict[str, JsonValue] = Field(
        default_factory=dict,
        description="Small summary of inputs (page number or query length)",
    )
    output_summary: dict[str, JsonValue] = Field(
        default_factory=dict,
        description="Small summary of outputs (counts only)",
    )
