"""Redis-backed conversation history."""

import logging
from typing import List, Optional

import redis.asyncio as redis

from chatpdf.core.config import settings
from chatpdf.core.exceptions import DatabaseError
from chatpdf.models.conversation import Message

logger = logging.getLogger(__name__)


class ConversationStore:
    """Ordered, append-only message log per session."""

    def __init__(self, client: Optional[redis.Redis] = None, prefix: str = "conversation") -> None:
        """
        Initialize the conversation store.

        Args:
            client: Redis client; created on connect when omitted.
            prefix: Key prefix for session lists.
        """
        self.client = client
        self.prefix = prefix

    async def connect(self) -> None:
        """Connect to Redis."""
        if self.client is not None:
            return
        try:
            self.client = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                max_connections=settings.redis_pool_size,
                socket_connect_timeout=5.0,
            )
            await self.client.ping()
        except Exception as e:
            raise DatabaseError(f"Failed to connect to Redis: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self.client:
            await self.client.aclose()
            self.client = None

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}:{session_id}"

    async def append(self, session_id: str, message: Message) -> None:
        """Add one message to the end of a session's history."""
        await self.extend(session_id, [message])

    async def extend(self, session_id: str, messages: List[Message]) -> None:
        """
        Add several messages in one atomic push, keeping their order.

        Args:
            session_id: Conversation id.
            messages: Messages to append.
        """
        if not messages:
            return
        if not self.client:
            raise DatabaseError("Redis not connected")

        try:
            await self.client.rpush(
                self._key(session_id),
                *[message.model_dump_json() for message in messages],
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to append to conversation {session_id}: {str(e)}") from e

    async def read(self, session_id: str) -> List[Message]:
        """
        Return a session's full history in insertion order.

        Returns:
            Messages, or an empty list for a session with no history.
        """
        if not self.client:
            raise DatabaseError("Redis not connected")

        try:
            raw = await self.client.lrange(self._key(session_id), 0, -1)
        except Exception as e:
            raise DatabaseError(
                f"Failed to read conversation {session_id}: {str(e)}") from e

        return [Message.model_validate_json(item) for item in raw]

    async def delete(self, session_id: str) -> None:
        """Remove a session's history."""
        if not self.client:
            raise DatabaseError("Redis not connected")

        try:
            await self.client.delete(self._key(session_id))
        except Exception as e:
            raise DatabaseError(
                f"Failed to delete conversation {session_id}: {str(e)}") from e
