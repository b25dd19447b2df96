"""Structured response models for LLM outputs."""

from typing import List

from pydantic import BaseModel, Field


class StructuredAnswer(BaseModel):
    """Structured answer from LLM with metadata."""

    answer: str = Field(description="The answer to the user's question")
    citations: List[int] = Field(
        default_factory=list,
        description="Numbers of the context passages used in the answer",
    )
    confidence: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Confidence score between 0 and 1"
    )


class Source(BaseModel):
    """A retrieved passage offered to the model as grounding context."""

    chunk_index: int
    start: int
    end: int
    score: float
    cited: bool = False


class Answer(BaseModel):
    """Result of answering one question in a conversation."""

    answer: str
    sources: List[Source] = Field(default_factory=list)
    confidence: float = 0.0
