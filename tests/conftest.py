"""Shared pytest configuration, in-memory backends and fixtures."""

import asyncio
import math
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from chatpdf.core.exceptions import (
    DatabaseError,
    DocumentNotFoundError,
    EmbeddingBackendError,
    GenerationError,
    InvalidStatusTransitionError,
    StorageWriteError,
)
from chatpdf.models.conversation import Message
from chatpdf.models.document import (
    Chunk,
    ConversationRef,
    Document,
    DocumentStatus,
    RetrievedChunk,
    allowed_sources,
)
from chatpdf.models.job import IngestionJob
from chatpdf.models.response import StructuredAnswer
from chatpdf.services.answer import AnswerGenerator
from chatpdf.services.chunking import ChunkingService
from chatpdf.services.indexer import EmbeddingIndexer
from chatpdf.services.ingestion_worker import IngestionWorker
from chatpdf.services.retriever import Retriever

VOCAB = ("transformer", "attention", "encoder", "decoder")

PARAGRAPHS = [
    "Alpha section: the encoder maps an input sequence to continuous representations.",
    "Beta section: the decoder generates the output sequence one symbol at a time here.",
    "Gamma section: attention lets every position attend to all positions, attention!",
]
THREE_CHUNK_TEXT = "\n\n".join(PARAGRAPHS)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── In-memory backends ──────────────────────────────────────────────────


class FakeRegistry:
    """Dict-backed document registry with the same status rules as PostgreSQL."""

    def __init__(self) -> None:
        self.documents: Dict[Tuple[str, str], Document] = {}
        self.leases: Dict[Tuple[str, str], Optional[float]] = {}
        self.conversations: Dict[str, Tuple[str, str, ConversationRef]] = {}
        self.status_history: List[Tuple[str, DocumentStatus]] = []

    def _with_conversations(self, document: Document) -> Document:
        refs = [
            ref for userid, documentid, ref in self.conversations.values()
            if documentid == document.documentid
        ]
        return document.model_copy(update={"conversations": refs})

    async def create(self, userid, documentid, filename, object_key, filesize=None) -> Document:
        now = _now()
        existing = self.documents.get((userid, documentid))
        document = Document(
            userid=userid,
            documentid=documentid,
            filename=filename,
            object_key=object_key,
            filesize=filesize,
            status=DocumentStatus.UPLOADED,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self.documents[(userid, documentid)] = document
        self.leases[(userid, documentid)] = None
        return self._with_conversations(document)

    async def get(self, userid, documentid) -> Optional[Document]:
        document = self.documents.get((userid, documentid))
        return self._with_conversations(document) if document else None

    async def find(self, documentid) -> Optional[Document]:
        for (_, docid), document in self.documents.items():
            if docid == documentid:
                return document
        return None

    async def list_by_user(self, userid) -> List[Document]:
        return [
            self._with_conversations(document)
            for (owner, _), document in self.documents.items()
            if owner == userid
        ]

    async def update_status(self, userid, documentid, status, chunk_count=None, error=None) -> Document:
        key = (userid, documentid)
        document = self.documents.get(key)
        if document is None:
            raise DocumentNotFoundError(f"Document {documentid} not found")
        if document.status not in allowed_sources(status):
            raise InvalidStatusTransitionError(
                f"Document {documentid} cannot move from {document.status.value} to {status.value}")
        updates = {"status": status, "last_error": error, "updated_at": _now()}
        if chunk_count is not None:
            updates["chunk_count"] = chunk_count
        document = document.model_copy(update=updates)
        self.documents[key] = document
        self.leases[key] = None
        self.status_history.append((documentid, status))
        return self._with_conversations(document)

    async def claim_for_processing(self, userid, documentid, lease_seconds) -> Optional[Document]:
        key = (userid, documentid)
        document = self.documents.get(key)
        if document is None:
            return None
        lease = self.leases.get(key)
        claimable = document.status in allowed_sources(DocumentStatus.PROCESSING) or (
            document.status == DocumentStatus.PROCESSING
            and (lease is None or lease < time.time())
        )
        if not claimable:
            return None
        document = document.model_copy(update={
            "status": DocumentStatus.PROCESSING,
            "attempts": document.attempts + 1,
            "updated_at": _now(),
        })
        self.documents[key] = document
        self.leases[key] = time.time() + lease_seconds
        self.status_history.append((documentid, DocumentStatus.PROCESSING))
        return document

    async def release_claim(self, userid, documentid, error=None) -> None:
        key = (userid, documentid)
        document = self.documents.get(key)
        if document is not None and document.status == DocumentStatus.PROCESSING:
            self.leases[key] = None
            self.documents[key] = document.model_copy(update={"last_error": error})

    async def create_conversation(self, userid, documentid) -> ConversationRef:
        if (userid, documentid) not in self.documents:
            raise DocumentNotFoundError(f"Document {documentid} not found")
        ref = ConversationRef(conversationid=str(uuid.uuid4()), created_at=_now())
        self.conversations[ref.conversationid] = (userid, documentid, ref)
        return ref

    async def get_conversation(self, userid, documentid, conversationid) -> Optional[ConversationRef]:
        entry = self.conversations.get(conversationid)
        if entry is None or entry[0] != userid or entry[1] != documentid:
            return None
        return entry[2]

    async def list_conversations(self, documentid) -> List[ConversationRef]:
        return [ref for _, docid, ref in self.conversations.values() if docid == documentid]

    def set_status(self, userid, documentid, status) -> None:
        key = (userid, documentid)
        self.documents[key] = self.documents[key].model_copy(update={"status": status})


def _cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeVectorDB:
    """Dict-backed index. Equal scores come back in reverse chunk order."""

    def __init__(self) -> None:
        self.points: Dict[Tuple[str, int], Tuple[Chunk, List[float]]] = {}
        self.upsert_failures = 0
        self.upsert_calls = 0

    async def upsert_chunks(self, chunks, embeddings, document_id) -> None:
        self.upsert_calls += 1
        if self.upsert_failures > 0:
            self.upsert_failures -= 1
            raise StorageWriteError("index unavailable")
        for chunk, embedding in zip(chunks, embeddings):
            self.points[(document_id, chunk.chunk_index)] = (chunk, embedding)

    async def delete_document_chunks(self, document_id, from_index=0) -> None:
        for key in [k for k in self.points if k[0] == document_id and k[1] >= from_index]:
            del self.points[key]

    async def count_chunks(self, document_id) -> int:
        return sum(1 for key in self.points if key[0] == document_id)

    async def search(self, document_id, query_embedding, limit) -> List[RetrievedChunk]:
        hits = [
            RetrievedChunk(
                document_id=document_id,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                start=chunk.start,
                end=chunk.end,
                score=_cosine(query_embedding, vector),
            )
            for (docid, _), (chunk, vector) in self.points.items()
            if docid == document_id
        ]
        hits.sort(key=lambda hit: (-hit.score, -hit.chunk_index))
        return hits[:limit]


class FakeEmbeddingService:
    """Counts vocabulary words, plus a constant component."""

    dimensions = len(VOCAB) + 1

    def __init__(self) -> None:
        self.failures = 0
        self.calls = 0

    @staticmethod
    def embed(text: str) -> List[float]:
        lowered = text.lower()
        return [float(lowered.count(word)) for word in VOCAB] + [1.0]

    async def generate_embeddings(self, texts, timeout=None) -> List[List[float]]:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise EmbeddingBackendError("embedding backend unavailable")
        return [self.embed(text) for text in texts]

    async def generate_embedding(self, text, timeout=None) -> List[float]:
        embeddings = await self.generate_embeddings([text], timeout=timeout)
        return embeddings[0]


class FakeObjectStore:
    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}

    async def get_object(self, key) -> bytes:
        return self.objects[key]

    async def generate_upload_url(self, key) -> str:
        return f"https://uploads.example.com/{key}?signature=test"


class FakeConversationStore:
    def __init__(self) -> None:
        self.sessions: Dict[str, List[Message]] = {}
        self.fail_writes = False

    async def append(self, session_id, message) -> None:
        await self.extend(session_id, [message])

    async def extend(self, session_id, messages) -> None:
        if self.fail_writes:
            raise DatabaseError("Redis unavailable")
        self.sessions.setdefault(session_id, []).extend(messages)

    async def read(self, session_id) -> List[Message]:
        return list(self.sessions.get(session_id, []))

    async def delete(self, session_id) -> None:
        self.sessions.pop(session_id, None)


class FakeLLM:
    """Returns a canned answer; can be told to fail or stall."""

    def __init__(self) -> None:
        self.fail = False
        self.delay = 0.0
        self.calls: List[dict] = []

    async def generate_answer(self, question, chunks, history) -> StructuredAnswer:
        self.calls.append({"question": question, "chunks": chunks, "history": history})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise GenerationError("model overloaded")
        return StructuredAnswer(
            answer=f"Answer to: {question}", citations=[1], confidence=0.8)


class FakeDLQ:
    def __init__(self) -> None:
        self.sent: List[Tuple[IngestionJob, str, int]] = []

    async def send_failed_job(self, job, error, attempts) -> None:
        self.sent.append((job, error, attempts))


class FakeQueue:
    def __init__(self) -> None:
        self.jobs: List[IngestionJob] = []

    async def send(self, job) -> str:
        self.jobs.append(job)
        return uuid.uuid4().hex


async def decode_text(data: bytes) -> str:
    return data.decode("utf-8")


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture()
def vector_db() -> FakeVectorDB:
    return FakeVectorDB()


@pytest.fixture()
def embedding_service() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture()
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture()
def conversation_store() -> FakeConversationStore:
    return FakeConversationStore()


@pytest.fixture()
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture()
def dlq() -> FakeDLQ:
    return FakeDLQ()


@pytest.fixture()
def queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture()
def chunking_service() -> ChunkingService:
    return ChunkingService(chunk_size=100, chunk_overlap=20)


@pytest.fixture()
def indexer(embedding_service, vector_db) -> EmbeddingIndexer:
    return EmbeddingIndexer(
        embedding_service=embedding_service,
        vector_db=vector_db,
        dimensions=FakeEmbeddingService.dimensions,
        max_retries=0,
        retry_delay=0.0,
    )


@pytest.fixture()
def worker(registry, object_store, chunking_service, indexer, dlq) -> IngestionWorker:
    return IngestionWorker(
        registry=registry,
        object_store=object_store,
        chunking_service=chunking_service,
        indexer=indexer,
        dlq_service=dlq,
        max_attempts=3,
        lease_seconds=60,
        extract_text=decode_text,
    )


@pytest.fixture()
def retriever(registry, vector_db) -> Retriever:
    return Retriever(registry=registry, vector_db=vector_db, overfetch=8)


@pytest.fixture()
def answer_generator(embedding_service, retriever, conversation_store, llm) -> AnswerGenerator:
    return AnswerGenerator(
        embedding_service=embedding_service,
        retriever=retriever,
        conversation_store=conversation_store,
        llm_service=llm,
        top_k=2,
        max_history_messages=4,
    )


@pytest.fixture()
def uploaded_document(registry, object_store) -> Document:
    """A three-paragraph document registered and stored, not yet ingested."""
    key = "user-1/doc-1/paper.pdf"
    object_store.objects[key] = THREE_CHUNK_TEXT.encode("utf-8")
    return asyncio.run(registry.create("user-1", "doc-1", "paper.pdf", key, 1024))


@pytest.fixture()
def ready_document(uploaded_document, worker) -> Document:
    """The three-paragraph document after a successful ingestion."""
    asyncio.run(worker.process_job(IngestionJob(userid="user-1", documentid="doc-1")))
    return uploaded_document
