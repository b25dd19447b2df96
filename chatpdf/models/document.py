"""Document models for the ingestion pipeline."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    """Processing status of an uploaded document."""

    UPLOADED = "uploaded"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


# Allowed status changes; a fresh upload resets any status to UPLOADED.
ALLOWED_TRANSITIONS = {
    DocumentStatus.UPLOADED: {DocumentStatus.PROCESSING, DocumentStatus.FAILED},
    DocumentStatus.PROCESSING: {DocumentStatus.READY, DocumentStatus.FAILED},
    DocumentStatus.READY: set(),
    DocumentStatus.FAILED: {DocumentStatus.PROCESSING},
}


def can_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    """Return True if a document may move from *current* to *target*."""
    return target in ALLOWED_TRANSITIONS[current]


def allowed_sources(target: DocumentStatus) -> List[DocumentStatus]:
    """Return the statuses from which *target* can be reached."""
    return [
        status
        for status, targets in ALLOWED_TRANSITIONS.items()
        if target in targets
    ]


class ConversationRef(BaseModel):
    """A conversation attached to a document."""

    conversationid: str
    created_at: datetime


class Document(BaseModel):
    """Registry entry for an uploaded document."""

    userid: str
    documentid: str
    filename: str
    object_key: str
    filesize: Optional[int] = None
    status: DocumentStatus = DocumentStatus.UPLOADED
    chunk_count: int = Field(default=0, ge=0)
    attempts: int = Field(default=0, ge=0)
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    conversations: List[ConversationRef] = Field(default_factory=list)

    class Config:
        """Pydantic config."""

        from_attributes = True

    @property
    def is_ready(self) -> bool:
        return self.status == DocumentStatus.READY


class Chunk(BaseModel):
    """A span of document text, the unit of embedding and retrieval."""

    id: str
    document_id: str
    chunk_index: int = Field(ge=0)
    content: str
    start: int = Field(ge=0)
    end: int = Field(ge=0)


class RetrievedChunk(BaseModel):
    """A chunk returned by similarity search."""

    document_id: str
    chunk_index: int
    content: str
    start: int
    end: int
    score: float
