"""Dead Letter Queue service for dropped ingestion jobs."""

import json
import logging
import time
from typing import Optional

from aiokafka import AIOKafkaProducer

from chatpdf.core.config import settings
from chatpdf.core.exceptions import DLQError
from chatpdf.models.job import IngestionJob

logger = logging.getLogger(__name__)


class DLQService:
    """Service for sending failed ingestion jobs to a Dead Letter Queue."""

    def __init__(self) -> None:
        """Initialize the DLQ service."""
        self.producer: Optional[AIOKafkaProducer] = None
        self.enabled = settings.dlq_enabled

    async def connect(self) -> None:
        """Connect to Kafka for DLQ."""
        if not self.enabled:
            return

        try:
            self.producer = AIOKafkaProducer(
                bootstrap_servers=settings.kafka_bootstrap_servers,
                value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            )
            await self.producer.start()
            logger.info("DLQ service connected")
        except Exception as e:
            logger.error(f"Failed to connect DLQ service: {str(e)}")
            raise DLQError(f"Failed to connect DLQ service: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Kafka."""
        if self.producer:
            await self.producer.stop()

    async def send_failed_job(
        self,
        job: IngestionJob,
        error: str,
        attempts: int,
    ) -> None:
        """
        Send a dropped ingestion job to the Dead Letter Queue.

        Args:
            job: The job that will not be retried.
            error: Error message describing the failure.
            attempts: Ingestion attempts made.
        """
        if not self.enabled or not self.producer:
            logger.warning(
                f"DLQ is disabled, not publishing failed job for {job.documentid}")
            return

        try:
            dlq_message = {
                "job": job.model_dump(),
                "error": error,
                "attempts": attempts,
                "source": settings.service_name,
                "timestamp": time.time(),
            }

            await self.producer.send_and_wait(
                settings.dlq_topic,
                value=dlq_message,
            )
            logger.info(
                f"Sent failed job to DLQ: document={job.documentid}, "
                f"attempts={attempts}, error={error[:100]}"
            )
        except Exception as e:
            logger.error(f"Failed to send job to DLQ: {str(e)}")
            raise DLQError(f"Failed to send job to DLQ: {str(e)}") from e
