"""Qdrant vector database service."""

from typing import List, Optional

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    NearestQuery,
    PayloadSchemaType,
    PointStruct,
    Range,
    VectorParams,
)

from chatpdf.core.config import settings
from chatpdf.core.exceptions import StorageWriteError, VectorDBError
from chatpdf.models.document import Chunk, RetrievedChunk


def _document_filter(document_id: str, min_chunk_index: Optional[int] = None) -> Filter:
    must = [FieldCondition(key="document_id", match=MatchValue(value=document_id))]
    if min_chunk_index is not None:
        must.append(FieldCondition(key="chunk_index", range=Range(gte=min_chunk_index)))
    return Filter(must=must)


class VectorDBService:
    """Service for interacting with Qdrant vector database."""

    def __init__(self) -> None:
        """Initialize the vector database service."""
        self.client: Optional[AsyncQdrantClient] = None
        self.collection_name = settings.qdrant_collection_name
        self.dimensions = settings.embedding_dimensions

    async def connect(self) -> None:
        """Connect to Qdrant."""
        try:
            self.client = AsyncQdrantClient(
                url=settings.qdrant_url,
                timeout=int(settings.qdrant_timeout_seconds),
            )
            await self._ensure_collection()
        except Exception as e:
            raise VectorDBError(
                f"Failed to connect to Qdrant: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Qdrant."""
        if self.client:
            await self.client.close()

    async def _ensure_collection(self) -> None:
        """Ensure the collection and its payload indexes exist."""
        if not self.client:
            raise VectorDBError("Client not connected")

        collections = await self.client.get_collections()
        collection_names = [col.name for col in collections.collections]

        if self.collection_name not in collection_names:
            await self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=self.dimensions,
                    distance=Distance.COSINE,
                ),
            )
            await self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name="document_id",
                field_schema=PayloadSchemaType.KEYWORD,
            )
            await self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name="chunk_index",
                field_schema=PayloadSchemaType.INTEGER,
            )

    async def upsert_chunks(
        self, chunks: List[Chunk], embeddings: List[List[float]], document_id: str
    ) -> None:
        """
        Upsert document chunks into the vector database.

        Point ids are derived from (document_id, chunk_index), so writing the
        same chunks again overwrites them in place.

        Args:
            chunks: Chunks of one document.
            embeddings: One embedding vector per chunk.
            document_id: ID of the source document.

        Raises:
            StorageWriteError: If the write fails.
        """
        if not self.client:
            raise StorageWriteError("Client not connected")

        if len(chunks) != len(embeddings):
            raise StorageWriteError(
                "Chunks and embeddings must have the same length")

        points = [
            PointStruct(
                id=chunk.id,
                vector=embedding,
                payload={
                    "document_id": document_id,
                    "chunk_index": chunk.chunk_index,
                    "content": chunk.content,
                    "start": chunk.start,
                    "end": chunk.end,
                },
            )
            for chunk, embedding in zip(chunks, embeddings)
        ]

        try:
            await self.client.upsert(
                collection_name=self.collection_name, points=points, wait=True)
        except Exception as e:
            raise StorageWriteError(
                f"Failed to upsert chunks for {document_id}: {str(e)}") from e

    async def delete_document_chunks(
        self, document_id: str, from_index: int = 0
    ) -> None:
        """
        Delete chunks of a document.

        Args:
            document_id: ID of the document.
            from_index: Only delete chunks with chunk_index >= from_index.

        Raises:
            StorageWriteError: If the delete fails.
        """
        if not self.client:
            raise StorageWriteError("Client not connected")

        try:
            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=FilterSelector(
                    filter=_document_filter(document_id, min_chunk_index=from_index)),
                wait=True,
            )
        except Exception as e:
            raise StorageWriteError(
                f"Failed to delete chunks for {document_id}: {str(e)}") from e

    async def count_chunks(self, document_id: str) -> int:
        """Return the number of indexed chunks for a document."""
        if not self.client:
            raise VectorDBError("Client not connected")

        try:
            result = await self.client.count(
                collection_name=self.collection_name,
                count_filter=_document_filter(document_id),
                exact=True,
            )
        except Exception as e:
            raise VectorDBError(f"Count failed for {document_id}: {str(e)}") from e
        return result.count

    async def search(
        self, document_id: str, query_embedding: List[float], limit: int
    ) -> List[RetrievedChunk]:
        """
        Search one document's chunks for the nearest neighbours of a vector.

        Args:
            document_id: Document whose chunks are searched.
            query_embedding: Query embedding vector.
            limit: Maximum number of results.

        Returns:
            Matching chunks with cosine similarity scores.
        """
        if not self.client:
            raise VectorDBError("Client not connected")

        try:
            results = await self.client.query_points(
                collection_name=self.collection_name,
                query=NearestQuery(nearest=query_embedding),
                query_filter=_document_filter(document_id),
                limit=limit,
                with_payload=True,
            )
        except Exception as e:
            raise VectorDBError(f"Search failed for {document_id}: {str(e)}") from e

        return [
            RetrievedChunk(
                document_id=document_id,
                chunk_index=point.payload["chunk_index"],
                content=point.payload.get("content", ""),
                start=point.payload.get("start", 0),
                end=point.payload.get("end", 0),
                score=point.score,
            )
            for point in results.points
        ]
