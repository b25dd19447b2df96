"""Query Service: documents, conversations and answers over REST."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from chatpdf.api.auth import get_user_id
from chatpdf.api.health import check_all_dependencies, check_readiness
from chatpdf.core.config import settings
from chatpdf.core.dependencies import (
    get_answer_generator,
    get_conversation_store,
    get_object_store,
    get_registry,
    services,
)
from chatpdf.core.exceptions import (
    DatabaseError,
    DocumentNotFoundError,
    DocumentNotReadyError,
    EmbeddingBackendError,
    GenerationError,
    ObjectStoreError,
    OperationTimeoutError,
    VectorDBError,
)
from chatpdf.models.document_api import (
    AnswerResponse,
    ConversationCreated,
    ConversationResponse,
    DocumentListResponse,
    PresignedUrlResponse,
    PromptRequest,
)
from chatpdf.monitoring.metrics import answer_errors_total
from chatpdf.services.answer import AnswerGenerator
from chatpdf.services.conversation_store import ConversationStore
from chatpdf.services.database import DocumentRegistry
from chatpdf.services.object_store import ObjectStoreService, object_key

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    await services.initialize()
    logger.info("Query Service started")
    yield
    await services.shutdown()
    logger.info("Query Service stopped")


app = FastAPI(title="Query Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health() -> dict:
    """
    Health check endpoint with dependency verification.

    Returns:
        Health status with service dependencies.
    """
    result = await check_all_dependencies(services)
    return {"status": result["status"], "service": "query-service", **result}


@app.get("/ready")
async def readiness() -> dict:
    """
    Readiness check endpoint.

    Returns:
        Readiness status.
    """
    result = await check_readiness(services)
    return {"service": "query-service", **result}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/doc", response_model=DocumentListResponse)
async def list_documents(
    userid: str = Depends(get_user_id),
    registry: DocumentRegistry = Depends(get_registry),
) -> DocumentListResponse:
    """
    List the caller's documents.

    Returns:
        Documents with status and conversations.
    """
    try:
        documents = await registry.list_by_user(userid)
    except DatabaseError as e:
        logger.error(f"Failed to list documents: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
    return DocumentListResponse(documents=documents, total=len(documents))


@app.post("/doc/{documentid}", response_model=ConversationCreated, status_code=201)
async def add_conversation(
    documentid: str,
    userid: str = Depends(get_user_id),
    registry: DocumentRegistry = Depends(get_registry),
) -> ConversationCreated:
    """
    Start a new conversation on a document.

    Args:
        documentid: Document to converse about.

    Returns:
        The new conversation id.
    """
    try:
        conversation = await registry.create_conversation(userid, documentid)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DatabaseError as e:
        logger.error(f"Failed to create conversation: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(
        f"Created conversation {conversation.conversationid} on document {documentid}")
    return ConversationCreated(conversationid=conversation.conversationid)


@app.get("/doc/{documentid}/{conversationid}", response_model=ConversationResponse)
async def get_conversation(
    documentid: str,
    conversationid: str,
    userid: str = Depends(get_user_id),
    registry: DocumentRegistry = Depends(get_registry),
    store: ConversationStore = Depends(get_conversation_store),
) -> ConversationResponse:
    """
    Get a conversation with its document and full message history.

    Args:
        documentid: Document the conversation belongs to.
        conversationid: Conversation id.

    Returns:
        Document and messages in order.
    """
    try:
        document = await registry.get(userid, documentid)
        conversation = await registry.get_conversation(userid, documentid, conversationid)
        if document is None or conversation is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        messages = await store.read(conversationid)
    except DatabaseError as e:
        logger.error(f"Failed to get conversation: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    return ConversationResponse(
        conversationid=conversationid,
        document=document,
        messages=messages,
    )


@app.get("/generate_presigned_url", response_model=PresignedUrlResponse)
async def generate_presigned_url(
    file_name: str = Query(..., min_length=1),
    userid: str = Depends(get_user_id),
    object_store: ObjectStoreService = Depends(get_object_store),
) -> PresignedUrlResponse:
    """
    Issue a time-limited URL for uploading a PDF straight to the object store.

    Args:
        file_name: Name of the file being uploaded.

    Returns:
        Upload URL, the new document id and the object key.
    """
    if "/" in file_name:
        raise HTTPException(status_code=400, detail="file_name must not contain '/'")

    documentid = str(uuid.uuid4())
    key = object_key(userid, documentid, file_name)
    try:
        url = await object_store.generate_upload_url(key)
    except ObjectStoreError as e:
        logger.error(f"Failed to presign upload: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    return PresignedUrlResponse(presignedurl=url, documentid=documentid, key=key)


@app.post("/{documentid}/{conversationid}", response_model=AnswerResponse)
async def generate_response(
    documentid: str,
    conversationid: str,
    body: PromptRequest,
    timeout: Optional[float] = Query(None, gt=0),
    userid: str = Depends(get_user_id),
    registry: DocumentRegistry = Depends(get_registry),
    answer_generator: AnswerGenerator = Depends(get_answer_generator),
) -> AnswerResponse:
    """
    Answer a prompt within a conversation.

    Args:
        documentid: Document the conversation is about.
        conversationid: Conversation id.
        body: Prompt and file name.
        timeout: Optional deadline in seconds for backend calls.

    Returns:
        Answer text and the passages it used.
    """
    try:
        conversation = await registry.get_conversation(userid, documentid, conversationid)
        if conversation is None:
            raise HTTPException(status_code=404, detail="Conversation not found")

        answer = await answer_generator.answer(
            documentid, conversationid, body.prompt, timeout=timeout)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DocumentNotReadyError as e:
        answer_errors_total.labels(reason="not_ready").inc()
        raise HTTPException(status_code=409, detail=str(e))
    except OperationTimeoutError as e:
        answer_errors_total.labels(reason="timeout").inc()
        raise HTTPException(status_code=504, detail=str(e))
    except (GenerationError, EmbeddingBackendError) as e:
        answer_errors_total.labels(reason="backend").inc()
        logger.error(f"Answer failed for conversation {conversationid}: {str(e)}")
        raise HTTPException(status_code=502, detail=str(e))
    except (DatabaseError, VectorDBError) as e:
        answer_errors_total.labels(reason="storage").inc()
        logger.error(f"Answer failed for conversation {conversationid}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    return AnswerResponse(
        conversationid=conversationid,
        answer=answer.answer,
        sources=answer.sources,
        confidence=answer.confidence,
    )
