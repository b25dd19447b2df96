"""Custom exceptions for the application."""


class TransientError(Exception):
    """Base for failures that may succeed when retried."""

    pass


class EmptyDocumentError(Exception):
    """Raised when a document yields no extractable text."""

    pass


class DocumentParseError(Exception):
    """Raised when an uploaded object cannot be read as a PDF."""

    pass


class EmbeddingBackendError(TransientError):
    """Raised when embedding generation fails."""

    pass


class StorageWriteError(TransientError):
    """Raised when chunk vectors cannot be written to the index."""

    pass


class VectorDBError(Exception):
    """Raised when vector database operations fail."""

    pass


class ObjectStoreError(TransientError):
    """Raised when object store operations fail."""

    pass


class DatabaseError(TransientError):
    """Raised when database operations fail."""

    pass


class QueueError(TransientError):
    """Raised when ingestion queue operations fail."""

    pass


class GenerationError(TransientError):
    """Raised when the language model fails to produce an answer."""

    pass


class OperationTimeoutError(TransientError, TimeoutError):
    """Raised when an embedding or generation call exceeds its deadline."""

    pass


class DocumentNotFoundError(Exception):
    """Raised when a document or conversation does not exist."""

    pass


class DocumentNotReadyError(Exception):
    """Raised when a document is queried before ingestion has completed."""

    def __init__(self, document_id: str, status: str) -> None:
        super().__init__(
            f"Document {document_id} is not ready (status: {status})")
        self.document_id = document_id
        self.status = status


class InvalidStatusTransitionError(Exception):
    """Raised when a document status change is not allowed."""

    pass


class DLQError(Exception):
    """Raised when Dead Letter Queue operations fail."""

    pass
