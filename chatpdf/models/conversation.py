"""Conversation history models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Author of a conversation message."""

    HUMAN = "human"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A single turn in a conversation."""

    role: MessageRole
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def human(cls, content: str) -> "Message":
        return cls(role=MessageRole.HUMAN, content=content)

    @classmethod
    def assistant(cls, content: str, **metadata: Any) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content, metadata=metadata)
