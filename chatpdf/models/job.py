"""Ingestion queue message models."""

from enum import Enum

from pydantic import BaseModel, Field


class IngestionJob(BaseModel):
    """Queue payload asking for one document to be ingested."""

    userid: str = Field(min_length=1)
    documentid: str = Field(min_length=1)


class QueueMessage(BaseModel):
    """A job received from the queue, with its delivery bookkeeping."""

    receipt: str
    job: IngestionJob
    receive_count: int = Field(default=1, ge=1)


class JobOutcome(str, Enum):
    """What the consumer should do with a message after processing."""

    ACK = "ack"
    RETRY = "retry"
