"""Document chunking service."""

import uuid
from typing import List, Optional

from langchain_text_splitters import RecursiveCharacterTextSplitter

from chatpdf.core.config import settings
from chatpdf.core.exceptions import EmptyDocumentError
from chatpdf.models.document import Chunk

CHUNK_NAMESPACE = uuid.UUID("00000000-0000-0000-0000-000000000000")


def chunk_id(document_id: str, chunk_index: int) -> str:
    """
    Generate a deterministic UUID for a chunk based on document_id and chunk_index.

    Args:
        document_id: ID of the source document.
        chunk_index: Index of the chunk.

    Returns:
        UUID string for the chunk.
    """
    return str(uuid.uuid5(CHUNK_NAMESPACE, f"{document_id}:{chunk_index}"))


class ChunkingService:
    """Service for chunking documents into overlapping passages."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ) -> None:
        """
        Initialize the chunking service.

        Args:
            chunk_size: Maximum characters per chunk.
            chunk_overlap: Characters repeated from the tail of the previous chunk.
        """
        self.chunk_size = chunk_size or settings.chunk_size
        self.chunk_overlap = (
            settings.chunk_overlap if chunk_overlap is None else chunk_overlap
        )
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})")
        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            length_function=len,
            separators=["\n\n", "\n", ". ", " ", ""],
            add_start_index=True,
        )

    def chunk_document(self, content: str, document_id: str) -> List[Chunk]:
        """
        Chunk a document into smaller pieces.

        Args:
            content: Extracted document text.
            document_id: ID of the source document.

        Returns:
            Chunks in document order, with source offsets.

        Raises:
            EmptyDocumentError: If the text is empty.
        """
        if not content or not content.strip():
            raise EmptyDocumentError(
                f"Document {document_id} has no extractable text")

        pieces = self.splitter.create_documents([content])
        chunks = []
        for idx, piece in enumerate(pieces):
            start = piece.metadata["start_index"]
            chunks.append(
                Chunk(
                    id=chunk_id(document_id, idx),
                    document_id=document_id,
                    chunk_index=idx,
                    content=piece.page_content,
                    start=start,
                    end=start + len(piece.page_content),
                )
            )
        return chunks
