"""Tests for the Redis work queue and the consumer's ack handling."""

import asyncio

from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis

from chatpdf.ingestion_service import handle_message
from chatpdf.models.document import DocumentStatus
from chatpdf.models.job import IngestionJob, JobOutcome
from chatpdf.services.queue import IngestionQueue

JOB = IngestionJob(userid="user-1", documentid="doc-1")


def _queue(visibility_timeout: float = 60) -> IngestionQueue:
    client = FakeRedis(server=FakeServer(), decode_responses=True)
    return IngestionQueue(
        client=client, name="test:ingestion", visibility_timeout=visibility_timeout)


def test_send_then_receive():
    async def scenario():
        queue = _queue()
        message_id = await queue.send(JOB)
        assert await queue.depth() == 1

        message = await queue.receive()
        assert message.receipt == message_id
        assert message.job == JOB
        assert message.receive_count == 1
        assert await queue.depth() == 0
        assert await queue.receive() is None

    asyncio.run(scenario())


def test_messages_delivered_in_send_order():
    async def scenario():
        queue = _queue()
        for documentid in ("doc-1", "doc-2", "doc-3"):
            await queue.send(IngestionJob(userid="user-1", documentid=documentid))

        received = [(await queue.receive()).job.documentid for _ in range(3)]
        assert received == ["doc-1", "doc-2", "doc-3"]

    asyncio.run(scenario())


def test_unacked_message_redelivered_after_visibility_timeout():
    async def scenario():
        queue = _queue(visibility_timeout=0)
        await queue.send(JOB)
        first = await queue.receive()

        assert await queue.requeue_expired() == 1
        second = await queue.receive()
        assert second.receipt == first.receipt
        assert second.receive_count == 2
        assert second.job == JOB

    asyncio.run(scenario())


def test_message_hidden_until_timeout():
    async def scenario():
        queue = _queue(visibility_timeout=60)
        await queue.send(JOB)
        await queue.receive()

        assert await queue.requeue_expired() == 0
        assert await queue.receive() is None

    asyncio.run(scenario())


def test_acked_message_never_redelivered():
    async def scenario():
        queue = _queue(visibility_timeout=0)
        await queue.send(JOB)
        message = await queue.receive()

        await queue.ack(message.receipt)

        assert await queue.requeue_expired() == 0
        assert await queue.receive() is None

    asyncio.run(scenario())


def test_retry_outcome_leaves_message_for_redelivery(
        uploaded_document, worker, registry, embedding_service):
    embedding_service.failures = 1

    async def scenario():
        queue = _queue(visibility_timeout=0)
        await queue.send(JOB)

        first = await queue.receive()
        assert await handle_message(first, queue, worker, 10) == JobOutcome.RETRY
        assert await queue.requeue_expired() == 1

        second = await queue.receive()
        assert second.receive_count == 2
        assert await handle_message(second, queue, worker, 10) == JobOutcome.ACK
        assert await queue.requeue_expired() == 0
        assert await queue.depth() == 0

    asyncio.run(scenario())
    assert asyncio.run(registry.get("user-1", "doc-1")).status == DocumentStatus.READY


def test_duplicate_messages_index_once(uploaded_document, worker, registry, vector_db):
    async def scenario():
        queue = _queue(visibility_timeout=0)
        await queue.send(JOB)
        await queue.send(JOB)

        for _ in range(2):
            message = await queue.receive()
            assert await handle_message(message, queue, worker, 10) == JobOutcome.ACK
        assert await queue.requeue_expired() == 0

    asyncio.run(scenario())
    ready = [s for _, s in registry.status_history if s == DocumentStatus.READY]
    assert ready == [DocumentStatus.READY]
    assert asyncio.run(vector_db.count_chunks("doc-1")) == 3


def test_message_over_receive_limit_abandoned(uploaded_document, worker, registry, dlq):
    asyncio.run(registry.claim_for_processing("user-1", "doc-1", 60))

    async def scenario():
        queue = _queue(visibility_timeout=0)
        await queue.send(JOB)
        await queue.receive()
        await queue.requeue_expired()
        message = await queue.receive()

        assert message.receive_count == 2
        assert await handle_message(message, queue, worker, 1) == JobOutcome.ACK
        assert await queue.requeue_expired() == 0
        assert await queue.receive() is None

    asyncio.run(scenario())
    assert asyncio.run(registry.get("user-1", "doc-1")).status == DocumentStatus.FAILED
    assert len(dlq.sent) == 1


def test_processing_error_leaves_message_unacked():
    class ExplodingWorker:
        async def process_job(self, job):
            raise RuntimeError("registry unreachable")

    async def scenario():
        queue = _queue(visibility_timeout=0)
        await queue.send(JOB)
        message = await queue.receive()

        assert await handle_message(message, queue, ExplodingWorker(), 10) is None
        assert await queue.requeue_expired() == 1

    asyncio.run(scenario())
