"""Redis work queue with visibility-timeout redelivery.

Messages wait in a pending list. Receiving a message moves it to an
in-flight sorted set scored by its visibility deadline; acknowledging
deletes it. Messages whose deadline passes without an ack are moved back
to the pending list by :meth:`IngestionQueue.requeue_expired`, so delivery
is at-least-once.
"""

import logging
import time
import uuid
from typing import Optional

import redis.asyncio as redis

from chatpdf.core.config import settings
from chatpdf.core.exceptions import QueueError
from chatpdf.models.job import IngestionJob, QueueMessage

logger = logging.getLogger(__name__)

RECEIVE_SCRIPT = """
local id = redis.call('LPOP', KEYS[1])
if not id then return nil end
redis.call('ZADD', KEYS[2], ARGV[1], id)
local count = redis.call('HINCRBY', KEYS[4], id, 1)
local body = redis.call('HGET', KEYS[3], id)
return {id, body, count}
"""

REQUEUE_SCRIPT = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1])
for _, id in ipairs(ids) do
    redis.call('ZREM', KEYS[1], id)
    redis.call('RPUSH', KEYS[2], id)
end
return #ids
"""


class IngestionQueue:
    """At-least-once queue of ingestion jobs."""

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        name: Optional[str] = None,
        visibility_timeout: Optional[float] = None,
    ) -> None:
        """
        Initialize the queue.

        Args:
            client: Redis client; created on connect when omitted.
            name: Key prefix for the queue's structures.
            visibility_timeout: Seconds a received message stays hidden.
        """
        self.client = client
        self.name = name or settings.queue_name
        self.visibility_timeout = (
            settings.visibility_timeout_seconds
            if visibility_timeout is None else visibility_timeout
        )
        self._pending = f"{self.name}:pending"
        self._inflight = f"{self.name}:inflight"
        self._bodies = f"{self.name}:messages"
        self._receives = f"{self.name}:receives"
        self._receive_script = None
        self._requeue_script = None
        if client is not None:
            self._register_scripts()

    def _register_scripts(self) -> None:
        self._receive_script = self.client.register_script(RECEIVE_SCRIPT)
        self._requeue_script = self.client.register_script(REQUEUE_SCRIPT)

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
            raise QueueError(f"Failed to connect to Redis: {str(e)}") from e
        self._register_scripts()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self.client:
            await self.client.aclose()
            self.client = None

    async def send(self, job: IngestionJob) -> str:
        """
        Enqueue a job.

        Returns:
            Message id.
        """
        if not self.client:
            raise QueueError("Queue not connected")

        message_id = uuid.uuid4().hex
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(self._bodies, message_id, job.model_dump_json())
                pipe.rpush(self._pending, message_id)
                await pipe.execute()
        except Exception as e:
            raise QueueError(f"Failed to enqueue job: {str(e)}") from e

        logger.info(
            f"Enqueued ingestion of document {job.documentid} as {message_id}")
        return message_id

    async def receive(self) -> Optional[QueueMessage]:
        """
        Take the next visible message, hiding it for the visibility timeout.

        Returns:
            The message, or None if the queue is empty.
        """
        if not self.client:
            raise QueueError("Queue not connected")

        deadline = time.time() + self.visibility_timeout
        try:
            result = await self._receive_script(
                keys=[self._pending, self._inflight, self._bodies, self._receives],
                args=[deadline],
            )
        except Exception as e:
            raise QueueError(f"Failed to receive job: {str(e)}") from e

        if not result:
            return None

        message_id, body, receive_count = result
        if body is None:
            logger.warning(f"Message {message_id} has no body, discarding")
            await self.ack(message_id)
            return None

        return QueueMessage(
            receipt=message_id,
            job=IngestionJob.model_validate_json(body),
            receive_count=int(receive_count),
        )

    async def ack(self, receipt: str) -> None:
        """Delete a received message for good."""
        if not self.client:
            raise QueueError("Queue not connected")

        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.zrem(self._inflight, receipt)
                pipe.hdel(self._bodies, receipt)
                pipe.hdel(self._receives, receipt)
                await pipe.execute()
        except Exception as e:
            raise QueueError(f"Failed to ack {receipt}: {str(e)}") from e

    async def requeue_expired(self) -> int:
        """
        Make in-flight messages past their deadline visible again.

        Returns:
            Number of messages requeued.
        """
        if not self.client:
            raise QueueError("Queue not connected")

        try:
            count = await self._requeue_script(
                keys=[self._inflight, self._pending],
                args=[time.time()],
            )
        except Exception as e:
            raise QueueError(f"Failed to requeue expired jobs: {str(e)}") from e

        if count:
            logger.info(f"Requeued {count} expired ingestion jobs")
        return int(count)

    async def depth(self) -> int:
        """Number of messages waiting to be received."""
        if not self.client:
            raise QueueError("Queue not connected")
        return await self.client.llen(self._pending)
