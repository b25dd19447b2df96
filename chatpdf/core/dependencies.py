"""Dependency injection for services."""

from chatpdf.core.config import settings
from chatpdf.services.answer import AnswerGenerator
from chatpdf.services.chunking import ChunkingService
from chatpdf.services.conversation_store import ConversationStore
from chatpdf.services.database import DocumentRegistry
from chatpdf.services.dlq import DLQService
from chatpdf.services.embedding import EmbeddingService
from chatpdf.services.indexer import EmbeddingIndexer
from chatpdf.services.ingestion_worker import IngestionWorker
from chatpdf.services.llm import LLMService
from chatpdf.services.object_store import ObjectStoreService
from chatpdf.services.queue import IngestionQueue
from chatpdf.services.retriever import Retriever
from chatpdf.services.uploads import UploadHandler
from chatpdf.services.vector_db import VectorDBService


class ServiceContainer:
    """Container for service instances.

    Handles are constructed once per process; network clients are opened in
    :meth:`initialize` and closed in :meth:`shutdown`.
    """

    def __init__(self) -> None:
        """Initialize service container."""
        self.vector_db = VectorDBService()
        self.embedding_service = EmbeddingService()
        self.chunking_service = ChunkingService()
        self.llm_service = LLMService()
        self.dlq_service = DLQService()
        self.registry = DocumentRegistry()
        self.conversation_store = ConversationStore()
        self.queue = IngestionQueue()
        self.object_store = ObjectStoreService()

        self.indexer = EmbeddingIndexer(
            embedding_service=self.embedding_service,
            vector_db=self.vector_db,
            dimensions=settings.embedding_dimensions,
        )
        self.retriever = Retriever(
            registry=self.registry,
            vector_db=self.vector_db,
            overfetch=settings.retrieval_overfetch,
        )
        self.answer_generator = AnswerGenerator(
            embedding_service=self.embedding_service,
            retriever=self.retriever,
            conversation_store=self.conversation_store,
            llm_service=self.llm_service,
            top_k=settings.top_k,
            max_history_messages=settings.max_history_messages,
        )
        self.ingestion_worker = IngestionWorker(
            registry=self.registry,
            object_store=self.object_store,
            chunking_service=self.chunking_service,
            indexer=self.indexer,
            dlq_service=self.dlq_service,
            max_attempts=settings.max_ingestion_attempts,
            lease_seconds=settings.visibility_timeout_seconds,
        )
        self.upload_handler = UploadHandler(registry=self.registry, queue=self.queue)

    async def initialize(self) -> None:
        """Initialize all services."""
        await self.vector_db.connect()
        await self.registry.connect()
        await self.conversation_store.connect()
        await self.queue.connect()
        await self.object_store.connect()
        await self.embedding_service.connect()
        await self.llm_service.connect()
        if self.dlq_service.enabled:
            await self.dlq_service.connect()

    async def shutdown(self) -> None:
        """Shutdown all services."""
        if self.dlq_service.enabled:
            await self.dlq_service.disconnect()
        await self.llm_service.disconnect()
        await self.embedding_service.disconnect()
        await self.object_store.disconnect()
        await self.queue.disconnect()
        await self.conversation_store.disconnect()
        await self.registry.disconnect()
        await self.vector_db.disconnect()


services = ServiceContainer()


def get_registry() -> DocumentRegistry:
    return services.registry


def get_conversation_store() -> ConversationStore:
    return services.conversation_store


def get_answer_generator() -> AnswerGenerator:
    return services.answer_generator


def get_object_store() -> ObjectStoreService:
    return services.object_store


def get_upload_handler() -> UploadHandler:
    return services.upload_handler
