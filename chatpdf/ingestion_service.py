"""Ingestion Service: consumes ingestion jobs and indexes uploaded documents."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from chatpdf.api.health import check_all_dependencies, check_readiness
from chatpdf.core.config import settings
from chatpdf.core.dependencies import get_upload_handler, services
from chatpdf.core.exceptions import DatabaseError, QueueError
from chatpdf.models.job import JobOutcome, QueueMessage
from chatpdf.services.ingestion_worker import IngestionWorker
from chatpdf.services.queue import IngestionQueue
from chatpdf.services.uploads import UploadHandler

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


async def consume_ingestion_jobs(worker_number: int) -> None:
    """Receive and process jobs until cancelled."""
    logger.info(f"Ingestion consumer {worker_number} started")
    while True:
        try:
            message = await services.queue.receive()
        except QueueError as e:
            logger.error(f"Consumer {worker_number} failed to receive: {str(e)}")
            await asyncio.sleep(settings.queue_poll_interval_seconds)
            continue

        if message is None:
            await asyncio.sleep(settings.queue_poll_interval_seconds)
            continue

        await handle_message(
            message,
            services.queue,
            services.ingestion_worker,
            settings.max_receive_count,
        )


async def handle_message(
    message: QueueMessage,
    queue: IngestionQueue,
    worker: IngestionWorker,
    max_receive_count: int,
) -> Optional[JobOutcome]:
    """
    Process one received message and acknowledge it when it is finished.

    A message received more than ``max_receive_count`` times is abandoned:
    its document is marked failed and the job goes to the DLQ.

    Returns:
        The job outcome, or None if processing raised.
    """
    try:
        if message.receive_count > max_receive_count:
            logger.error(
                f"Job {message.receipt} for document {message.job.documentid} "
                f"received {message.receive_count} times, abandoning")
            await worker.abandon(
                message.job,
                f"Abandoned after {message.receive_count} deliveries")
            outcome = JobOutcome.ACK
        else:
            outcome = await worker.process_job(message.job)
    except Exception as e:
        logger.error(
            f"Error processing job {message.receipt} for document "
            f"{message.job.documentid} (delivery {message.receive_count}): {str(e)}"
        )
        return None

    if outcome == JobOutcome.ACK:
        try:
            await queue.ack(message.receipt)
        except QueueError as e:
            logger.error(f"Failed to ack job {message.receipt}: {str(e)}")
    return outcome


async def requeue_expired_jobs() -> None:
    """Periodically return timed-out jobs to the queue."""
    while True:
        try:
            await services.queue.requeue_expired()
        except QueueError as e:
            logger.error(f"Requeue pass failed: {str(e)}")
        await asyncio.sleep(settings.requeue_interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    await services.initialize()
    tasks: List[asyncio.Task] = [
        asyncio.create_task(consume_ingestion_jobs(n))
        for n in range(settings.ingestion_concurrency)
    ]
    tasks.append(asyncio.create_task(requeue_expired_jobs()))
    logger.info(
        f"Ingestion Service started with {settings.ingestion_concurrency} consumers")
    yield
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await services.shutdown()
    logger.info("Ingestion Service stopped")


app = FastAPI(title="Ingestion Service", lifespan=lifespan)


@app.get("/health")
async def health() -> dict:
    """
    Health check endpoint with dependency verification.

    Returns:
        Health status with service dependencies.
    """
    result = await check_all_dependencies(
        services, include_kafka=settings.dlq_enabled)
    return {"status": result["status"], "service": "ingestion-service", **result}


@app.get("/ready")
async def readiness() -> dict:
    """
    Readiness check endpoint.

    Returns:
        Readiness status.
    """
    result = await check_readiness(services)
    return {"service": "ingestion-service", **result}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/api/queue")
async def queue_status() -> dict:
    """
    Get the number of jobs waiting for a consumer.

    Returns:
        Queue depth.
    """
    try:
        return {"pending": await services.queue.depth()}
    except QueueError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/upload-events", status_code=202)
async def upload_events(
    event: dict,
    upload_handler: UploadHandler = Depends(get_upload_handler),
) -> dict:
    """
    Receive object-created notifications from the object store.

    Args:
        event: S3 event notification with a ``Records`` list.

    Returns:
        Ids of the documents registered for ingestion.
    """
    try:
        documents = await upload_handler.handle_event(event)
    except (DatabaseError, QueueError) as e:
        logger.error(f"Failed to register upload: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    return {"documents": [document.documentid for document in documents]}
