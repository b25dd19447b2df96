"""Retrieval of the most relevant chunks of one document."""

import logging
from typing import List

from chatpdf.core.exceptions import DocumentNotFoundError, DocumentNotReadyError
from chatpdf.models.document import DocumentStatus, RetrievedChunk
from chatpdf.services.database import DocumentRegistry
from chatpdf.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)


def rank_chunks(candidates: List[RetrievedChunk], k: int) -> List[RetrievedChunk]:
    """Order by score descending, ties by ascending chunk index, and keep k."""
    ordered = sorted(candidates, key=lambda c: (-c.score, c.chunk_index))
    return ordered[:k]


class Retriever:
    """Returns the top-k chunks of a ready document for a query vector."""

    def __init__(
        self,
        registry: DocumentRegistry,
        vector_db: VectorDBService,
        overfetch: int = 0,
    ) -> None:
        """
        Initialize the retriever.

        Args:
            registry: Document registry used for the readiness gate.
            vector_db: Vector database service.
            overfetch: Extra candidates requested so equal scores at the
                cut-off are ranked by chunk index.
        """
        self.registry = registry
        self.vector_db = vector_db
        self.overfetch = overfetch

    async def retrieve(
        self, document_id: str, query_vector: List[float], k: int
    ) -> List[RetrievedChunk]:
        """
        Return the k chunks most similar to the query vector.

        Args:
            document_id: Document to search.
            query_vector: Query embedding.
            k: Number of chunks to return.

        Returns:
            Ranked chunks.

        Raises:
            DocumentNotFoundError: If the document is unknown.
            DocumentNotReadyError: If ingestion has not completed.
        """
        document = await self.registry.find(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        if document.status != DocumentStatus.READY:
            raise DocumentNotReadyError(document_id, document.status.value)
        if k <= 0:
            return []

        candidates = await self.vector_db.search(
            document_id, query_vector, limit=k + self.overfetch)
        ranked = rank_chunks(candidates, k)
        logger.debug(
            f"Retrieved {len(ranked)} of {len(candidates)} candidates for {document_id}")
        return ranked
