"""Ingestion worker: drives one uploaded document to ready or failed."""

import logging
import time
from typing import Awaitable, Callable

from chatpdf.core.exceptions import (
    DLQError,
    DocumentParseError,
    EmptyDocumentError,
    TransientError,
)
from chatpdf.models.document import Document, DocumentStatus
from chatpdf.models.job import IngestionJob, JobOutcome
from chatpdf.monitoring.metrics import (
    ingestion_duration_seconds,
    ingestion_jobs_total,
    ingestion_outcomes_total,
)
from chatpdf.services.chunking import ChunkingService
from chatpdf.services.database import DocumentRegistry
from chatpdf.services.dlq import DLQService
from chatpdf.services.indexer import EmbeddingIndexer
from chatpdf.services.object_store import ObjectStoreService
from chatpdf.services.pdf import extract_text_async

logger = logging.getLogger(__name__)


class IngestionWorker:
    """Processes ingestion jobs received from the queue."""

    def __init__(
        self,
        registry: DocumentRegistry,
        object_store: ObjectStoreService,
        chunking_service: ChunkingService,
        indexer: EmbeddingIndexer,
        dlq_service: DLQService,
        max_attempts: int,
        lease_seconds: float,
        extract_text: Callable[[bytes], Awaitable[str]] = extract_text_async,
    ) -> None:
        """
        Initialize ingestion worker.

        Args:
            registry: Document registry.
            object_store: Source of uploaded PDFs.
            chunking_service: Document chunking service.
            indexer: Embedding indexer.
            dlq_service: Destination for dropped jobs.
            max_attempts: Attempts before a document is marked failed.
            lease_seconds: How long a claim blocks other workers.
            extract_text: Converts the uploaded object to plain text.
        """
        self.registry = registry
        self.object_store = object_store
        self.chunking_service = chunking_service
        self.indexer = indexer
        self.dlq_service = dlq_service
        self.max_attempts = max_attempts
        self.lease_seconds = lease_seconds
        self.extract_text = extract_text

    async def process_job(self, job: IngestionJob) -> JobOutcome:
        """
        Process one ingestion job.

        Args:
            job: Queue payload.

        Returns:
            ACK when the job is finished (done, duplicate or dropped),
            RETRY when it should be redelivered.
        """
        ingestion_jobs_total.inc()

        document = await self.registry.get(job.userid, job.documentid)
        if document is None:
            logger.warning(
                f"Ingestion job for unknown document {job.documentid}, dropping")
            ingestion_outcomes_total.labels(outcome="unknown").inc()
            return JobOutcome.ACK

        if document.status == DocumentStatus.READY:
            logger.info(
                f"Document {job.documentid} already indexed, skipping duplicate job")
            ingestion_outcomes_total.labels(outcome="duplicate").inc()
            return JobOutcome.ACK

        claimed = await self.registry.claim_for_processing(
            job.userid, job.documentid, self.lease_seconds)
        if claimed is None:
            ingestion_outcomes_total.labels(outcome="claimed").inc()
            if document.status == DocumentStatus.PROCESSING:
                # The holder may have crashed; keep the job until its lease ends.
                logger.info(
                    f"Document {job.documentid} is being processed elsewhere, "
                    f"leaving job for redelivery")
                return JobOutcome.RETRY
            logger.info(
                f"Document {job.documentid} cannot be claimed "
                f"(status: {document.status.value}), skipping")
            return JobOutcome.ACK

        start_time = time.time()
        try:
            chunk_count = await self._ingest(claimed)
        except (EmptyDocumentError, DocumentParseError) as e:
            await self._fail(job, claimed, str(e))
            return JobOutcome.ACK
        except TransientError as e:
            return await self._retry_or_fail(job, claimed, str(e))
        except Exception as e:
            logger.exception(
                f"Unexpected error ingesting document {job.documentid}")
            return await self._retry_or_fail(
                job, claimed, f"{type(e).__name__}: {str(e)}")

        await self.registry.update_status(
            job.userid,
            job.documentid,
            DocumentStatus.READY,
            chunk_count=chunk_count,
        )
        processing_time = time.time() - start_time
        ingestion_duration_seconds.observe(processing_time)
        ingestion_outcomes_total.labels(outcome="ready").inc()
        logger.info(
            f"Document {job.documentid} ready with {chunk_count} chunks "
            f"in {processing_time:.2f}s (attempt {claimed.attempts})")
        return JobOutcome.ACK

    async def _ingest(self, document: Document) -> int:
        data = await self.object_store.get_object(document.object_key)
        text = await self.extract_text(data)
        chunks = self.chunking_service.chunk_document(text, document.documentid)
        return await self.indexer.index_document(document.documentid, chunks)

    async def abandon(self, job: IngestionJob, reason: str) -> None:
        """
        Give up on a job the queue has delivered too many times.

        The document is marked failed unless it is already ready or failed,
        and the job is published to the DLQ.

        Args:
            job: Queue payload.
            reason: Why the job is dropped.
        """
        document = await self.registry.get(job.userid, job.documentid)
        if document is None or document.status == DocumentStatus.READY:
            return
        if document.status == DocumentStatus.FAILED:
            await self._publish_failed(job, reason, document.attempts)
            return
        await self._fail(job, document, reason)

    async def _retry_or_fail(
        self, job: IngestionJob, document: Document, error: str
    ) -> JobOutcome:
        if document.attempts >= self.max_attempts:
            await self._fail(job, document, error)
            return JobOutcome.ACK
        logger.warning(
            f"Attempt {document.attempts}/{self.max_attempts} for document "
            f"{job.documentid} failed: {error}; leaving job for redelivery")
        await self.registry.release_claim(job.userid, job.documentid, error)
        ingestion_outcomes_total.labels(outcome="retry").inc()
        return JobOutcome.RETRY

    async def _fail(self, job: IngestionJob, document: Document, error: str) -> None:
        logger.error(
            f"Ingestion of document {job.documentid} failed after "
            f"{document.attempts} attempt(s): {error}")
        await self.registry.update_status(
            job.userid, job.documentid, DocumentStatus.FAILED, error=error)
        ingestion_outcomes_total.labels(outcome="failed").inc()
        await self._publish_failed(job, error, document.attempts)

    async def _publish_failed(self, job: IngestionJob, error: str, attempts: int) -> None:
        try:
            await self.dlq_service.send_failed_job(job, error, attempts)
        except DLQError as e:
            logger.error(f"Could not publish failed job to DLQ: {str(e)}")
