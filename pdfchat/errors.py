"""Domain exception types shared by ingestion, retrieval and chat."""


class PdfChatError(Exception):
    """Base class for all application errors."""

    pass


class NonRetriableError(PdfChatError):
    """Input problem that no amount of retrying will fix.

    Raised for unreachable sources, unreadable PDFs and zero-page documents.
    Both the per-call retry policy and the pipeline-level retry budget
    re-raise it immediately.
    """

    pass


class InvalidStatusTransition(PdfChatError):
    """Attempted ingestion status write that the state machine forbids."""

    def __init__(self, document_id: object, current: str, target: str) -> None:
        super().__init__(f"Document {document_id}: cannot move from {current} to {target}")
        self.document_id = document_id
        self.current = current
        self.target = target


class DocumentNotFoundError(PdfChatError):
    """Document is absent or owned by someone else."""

    pass


class ConversationNotFoundError(PdfChatError):
    """Conversation is absent, owned by someone else, or on another document."""

    pass


class DocumentNotReadyError(PdfChatError):
    """Document has not finished ingestion."""

    pass


class ToolExecutionError(PdfChatError):
    """A retrieval tool failed while serving a chat tool call."""

    pass


class InvalidChatRequestError(PdfChatError):
    """Chat request cannot be answered (for example, no user message)."""

    pass


class BlobNotFoundError(PdfChatError):
    """Stored PDF bytes are missing for a handle."""

    pass
