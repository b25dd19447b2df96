"""OpenAI embedding generation service."""

import asyncio
from typing import List, Optional

from openai import AsyncOpenAI

from chatpdf.core.config import settings
from chatpdf.core.exceptions import EmbeddingBackendError, OperationTimeoutError


class EmbeddingService:
    """Service for generating embeddings using OpenAI."""

    def __init__(self) -> None:
        """Initialize the embedding service."""
        self.client: Optional[AsyncOpenAI] = None
        self.model = settings.embedding_model
        self.dimensions = settings.embedding_dimensions
        self.batch_size = settings.embedding_batch_size
        self.timeout = settings.embedding_timeout_seconds

    async def connect(self) -> None:
        """Create the shared OpenAI client."""
        if self.client is None:
            self.client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=self.timeout,
            )

    async def disconnect(self) -> None:
        """Close the OpenAI client."""
        if self.client:
            await self.client.close()
            self.client = None

    async def generate_embeddings(
        self, texts: List[str], timeout: Optional[float] = None
    ) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of text strings to embed, sent in batches.
            timeout: Deadline in seconds for each batch.

        Returns:
            List of embedding vectors in input order.

        Raises:
            EmbeddingBackendError: If embedding generation fails.
            OperationTimeoutError: If a batch exceeds the deadline.
        """
        if not self.client:
            raise EmbeddingBackendError("Embedding client not connected")

        embeddings: List[List[float]] = []
        for offset in range(0, len(texts), self.batch_size):
            batch = texts[offset:offset + self.batch_size]
            try:
                response = await asyncio.wait_for(
                    self.client.embeddings.create(
                        model=self.model,
                        input=batch,
                        dimensions=self.dimensions,
                    ),
                    timeout=timeout or self.timeout,
                )
            except asyncio.TimeoutError as e:
                raise OperationTimeoutError(
                    f"Embedding request timed out after {timeout or self.timeout}s") from e
            except Exception as e:
                raise EmbeddingBackendError(
                    f"Failed to generate embeddings: {str(e)}") from e

            data = sorted(response.data, key=lambda item: item.index)
            embeddings.extend(item.embedding for item in data)

        return embeddings

    async def generate_embedding(
        self, text: str, timeout: Optional[float] = None
    ) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text string to embed.
            timeout: Deadline in seconds.

        Returns:
            Embedding vector.
        """
        embeddings = await self.generate_embeddings([text], timeout=timeout)
        return embeddings[0]
