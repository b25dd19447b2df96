"""Embedding indexer: chunk vectors for one document."""

import logging
import time
from typing import List, Optional

from chatpdf.core.exceptions import (
    EmbeddingBackendError,
    OperationTimeoutError,
    StorageWriteError,
)
from chatpdf.models.document import Chunk
from chatpdf.monitoring.metrics import chunks_indexed_total, embedding_duration_seconds
from chatpdf.services.embedding import EmbeddingService
from chatpdf.services.retry import retry_with_backoff
from chatpdf.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)


class EmbeddingIndexer:
    """Computes chunk embeddings and persists them per document."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_db: VectorDBService,
        dimensions: int,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ) -> None:
        """
        Initialize the indexer.

        Args:
            embedding_service: Embedding generation service.
            vector_db: Vector database service.
            dimensions: Expected embedding dimensionality.
            max_retries: In-process retries per backend call.
            retry_delay: Initial backoff delay in seconds.
        """
        self.embedding_service = embedding_service
        self.vector_db = vector_db
        self.dimensions = dimensions
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def index_document(self, document_id: str, chunks: List[Chunk]) -> int:
        """
        Embed and store every chunk of a document.

        Chunk ids are deterministic, so re-indexing overwrites the previous
        points. Points left over from a longer earlier version are removed.

        Args:
            document_id: ID of the document.
            chunks: Chunks in document order.

        Returns:
            Number of chunks written.

        Raises:
            EmbeddingBackendError: If embeddings cannot be generated.
            StorageWriteError: If vectors cannot be written.
        """
        texts = [chunk.content for chunk in chunks]

        start_time = time.time()
        embeddings = await retry_with_backoff(
            lambda: self.embedding_service.generate_embeddings(texts),
            exceptions=(EmbeddingBackendError, OperationTimeoutError),
            max_retries=self.max_retries,
            delay=self.retry_delay,
            description=f"embed {document_id}",
        )
        embedding_duration_seconds.observe(time.time() - start_time)

        if len(embeddings) != len(chunks):
            raise EmbeddingBackendError(
                f"Expected {len(chunks)} embeddings, got {len(embeddings)}")
        for embedding in embeddings:
            if len(embedding) != self.dimensions:
                raise EmbeddingBackendError(
                    f"Embedding has {len(embedding)} dimensions, "
                    f"expected {self.dimensions}")

        await retry_with_backoff(
            lambda: self.vector_db.upsert_chunks(chunks, embeddings, document_id),
            exceptions=(StorageWriteError,),
            max_retries=self.max_retries,
            delay=self.retry_delay,
            description=f"upsert {document_id}",
        )
        await retry_with_backoff(
            lambda: self.vector_db.delete_document_chunks(
                document_id, from_index=len(chunks)),
            exceptions=(StorageWriteError,),
            max_retries=self.max_retries,
            delay=self.retry_delay,
            description=f"prune {document_id}",
        )

        chunks_indexed_total.inc(len(chunks))
        logger.info(f"Indexed {len(chunks)} chunks for document {document_id}")
        return len(chunks)
