"""Pydantic models for the query API."""

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from chatpdf.models.conversation import Message
from chatpdf.models.document import Document
from chatpdf.models.response import Source


class PromptRequest(BaseModel):
    """Body of a question posted to a conversation."""

    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field("", alias="fileName")
    prompt: str = Field(..., min_length=1)


class ConversationCreated(BaseModel):
    """Model for a newly created conversation."""

    conversationid: str


class ConversationResponse(BaseModel):
    """Model for a full conversation with its document."""

    conversationid: str
    document: Document
    messages: List[Message]


class AnswerResponse(BaseModel):
    """Model for an answered prompt."""

    conversationid: str
    answer: str
    sources: List[Source]
    confidence: float


class DocumentListResponse(BaseModel):
    """Model for document list response."""

    documents: List[Document]
    total: int


class PresignedUrlResponse(BaseModel):
    """Model for a direct-upload URL."""

    presignedurl: str
    documentid: str
    key: str
