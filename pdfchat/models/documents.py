"""Document and chunk domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class IngestionStatus(str, Enum):
    """Ingestion state machine.

    pending -> extracting -> embedding -> ready, with failed reachable from
    any in-progress state. ready and failed are terminal.
    """

    pending = "pending"
    extracting = "extracting"
    embedding = "embedding"
    ready = "ready"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({IngestionStatus.ready, IngestionStatus.failed})

# Forward-only edges. Re-writing the current status is treated as a no-op so
# a resumed stage can re-announce itself.
ALLOWED_TRANSITIONS: dict[IngestionStatus, frozenset[IngestionStatus]] = {
    IngestionStatus.pending: frozenset({IngestionStatus.extracting, IngestionStatus.failed}),
    IngestionStatus.extracting: frozenset({IngestionStatus.embedding, IngestionStatus.failed}),
    IngestionStatus.embedding: frozenset({IngestionStatus.ready, IngestionStatus.failed}),
    IngestionStatus.ready: frozenset(),
    IngestionStatus.failed: frozenset(),
}


def can_transition(current: IngestionStatus, target: IngestionStatus) -> bool:
    """Check whether a status write is permitted."""
    return current == target or target in ALLOWED_TRANSITIONS[current]


def predecessors_of(target: IngestionStatus) -> set[IngestionStatus]:
    """All statuses from which target may be written (including itself)."""
    sources = {status for status, targets in ALLOWED_TRANSITIONS.items() if target in targets}
    sources.add(target)
    return sources


class CamelModel(BaseModel):
    """Base model serialising to camelCase for the HTTP surface."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DocumentOut(CamelModel):
    """Document metadata as returned to the owner."""

    id: UUID
    user_id: UUID
    title: str
    filename: str
    file_size: int
    last_page: int
    ingestion_status: IngestionStatus
    created_at: datetime
    updated_at: datetime


class DocumentStatusOut(CamelModel):
    """Polling payload: the status enum and nothing else."""

    ingestion_status: IngestionStatus


class PageGroup(BaseModel):
    """Contiguous 1-based inclusive page range handled by one extraction call."""

    index: int = Field(..., ge=0)
    start_page: int = Field(..., ge=1)
    end_page: int = Field(..., ge=1)

    @property
    def page_count(self) -> int:
        return self.end_page - self.start_page + 1


class ChunkMatch(CamelModel):
    """Model-facing view of a chunk: content and page range only."""

    content: str
    start_page: int
    end_page: int


class RetrievalResult(BaseModel):
    """Outcome of a retrieval tool.

    Exactly one of results/error is meaningful. An empty match set is never
    reported as success; it carries an explicit error message instead.
    """

    results: list[ChunkMatch] = Field(default_factory=list)
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.error is None

    @classmethod
    def no_content(cls, message: str) -> "RetrievalResult":
        return cls(error=message)

    def to_tool_output(self) -> dict[str, object]:
        """Serialise for the model, using camelCase page fields."""
        if self.error is not None:
            return {"error": self.error}
        return {"results": [match.model_dump(by_alias=True) for match in self.results]}
