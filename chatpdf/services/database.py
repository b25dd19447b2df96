"""Document registry backed by PostgreSQL."""

import logging
import uuid
from typing import Dict, List, Optional

import asyncpg

from chatpdf.core.config import settings
from chatpdf.core.exceptions import (
    DatabaseError,
    DocumentNotFoundError,
    InvalidStatusTransitionError,
)
from chatpdf.models.document import (
    ConversationRef,
    Document,
    DocumentStatus,
    allowed_sources,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    userid TEXT NOT NULL,
    documentid TEXT NOT NULL,
    filename TEXT NOT NULL,
    object_key TEXT NOT NULL,
    filesize BIGINT,
    status TEXT NOT NULL DEFAULT 'uploaded',
    chunk_count INTEGER NOT NULL DEFAULT 0,
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    lease_expires_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (userid, documentid)
);
CREATE UNIQUE INDEX IF NOT EXISTS documents_documentid_idx ON documents (documentid);
CREATE TABLE IF NOT EXISTS conversations (
    conversationid TEXT PRIMARY KEY,
    documentid TEXT NOT NULL,
    userid TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS conversations_documentid_idx ON conversations (documentid);
"""

DOCUMENT_COLUMNS = """
    userid, documentid, filename, object_key, filesize, status, chunk_count,
    attempts, last_error, created_at, updated_at
"""


class DocumentRegistry:
    """Catalog of uploaded documents, their status and conversations."""

    def __init__(self) -> None:
        """Initialize database service."""
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Create connection pool and ensure the schema exists."""
        try:
            self.pool = await asyncpg.create_pool(
                settings.postgres_url,
                min_size=settings.postgres_pool_min_size,
                max_size=settings.postgres_pool_max_size,
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to connect to database: {str(e)}") from e
        await self.ensure_schema()

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()

    async def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                await conn.execute(SCHEMA)
        except Exception as e:
            raise DatabaseError(f"Failed to create schema: {str(e)}") from e

    async def create(
        self,
        userid: str,
        documentid: str,
        filename: str,
        object_key: str,
        filesize: Optional[int] = None,
    ) -> Document:
        """
        Register an uploaded document.

        A repeated upload of the same document replaces the object and
        resets it to ``uploaded`` so it is ingested again.

        Returns:
            The registry entry.
        """
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO documents (userid, documentid, filename, object_key, filesize, status)
                    VALUES ($1, $2, $3, $4, $5, 'uploaded')
                    ON CONFLICT (userid, documentid) DO UPDATE
                    SET filename = EXCLUDED.filename,
                        object_key = EXCLUDED.object_key,
                        filesize = EXCLUDED.filesize,
                        status = 'uploaded',
                        chunk_count = 0,
                        attempts = 0,
                        last_error = NULL,
                        lease_expires_at = NULL,
                        updated_at = now()
                    RETURNING {DOCUMENT_COLUMNS}
                    """,
                    userid,
                    documentid,
                    filename,
                    object_key,
                    filesize,
                )
                conversations = await self._fetch_conversations(conn, [documentid])
        except Exception as e:
            raise DatabaseError(f"Failed to create document: {str(e)}") from e

        return self._to_document(row, conversations)

    async def get(self, userid: str, documentid: str) -> Optional[Document]:
        """
        Get a document owned by a user.

        Returns:
            Document or None if not found.
        """
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {DOCUMENT_COLUMNS} FROM documents "
                    "WHERE userid = $1 AND documentid = $2",
                    userid,
                    documentid,
                )
                if not row:
                    return None
                conversations = await self._fetch_conversations(conn, [documentid])
        except Exception as e:
            raise DatabaseError(f"Failed to fetch document: {str(e)}") from e

        return self._to_document(row, conversations)

    async def find(self, documentid: str) -> Optional[Document]:
        """Get a document by its id alone, without conversations."""
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {DOCUMENT_COLUMNS} FROM documents WHERE documentid = $1",
                    documentid,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to fetch document: {str(e)}") from e

        return self._to_document(row, {}) if row else None

    async def list_by_user(self, userid: str) -> List[Document]:
        """
        List a user's documents, newest first.

        Args:
            userid: Owner of the documents.

        Returns:
            Documents with their conversations.
        """
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f"SELECT {DOCUMENT_COLUMNS} FROM documents "
                    "WHERE userid = $1 ORDER BY created_at DESC",
                    userid,
                )
                conversations = await self._fetch_conversations(
                    conn, [row["documentid"] for row in rows])
        except Exception as e:
            raise DatabaseError(f"Failed to list documents: {str(e)}") from e

        return [self._to_document(row, conversations) for row in rows]

    async def update_status(
        self,
        userid: str,
        documentid: str,
        status: DocumentStatus,
        chunk_count: Optional[int] = None,
        error: Optional[str] = None,
    ) -> Document:
        """
        Move a document to a new status.

        Args:
            userid: Owner of the document.
            documentid: Document to update.
            status: Target status.
            chunk_count: Number of indexed chunks, when known.
            error: Failure reason recorded with the status.

        Returns:
            The updated document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            InvalidStatusTransitionError: If the change is not allowed.
        """
        if not self.pool:
            raise DatabaseError("Database not connected")

        sources = [s.value for s in allowed_sources(status)]
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE documents
                    SET status = $3,
                        chunk_count = COALESCE($4, chunk_count),
                        last_error = $5,
                        lease_expires_at = NULL,
                        updated_at = now()
                    WHERE userid = $1 AND documentid = $2 AND status = ANY($6::text[])
                    RETURNING {DOCUMENT_COLUMNS}
                    """,
                    userid,
                    documentid,
                    status.value,
                    chunk_count,
                    error,
                    sources,
                )
                current = None
                if not row:
                    current = await conn.fetchval(
                        "SELECT status FROM documents WHERE userid = $1 AND documentid = $2",
                        userid,
                        documentid,
                    )
                conversations = await self._fetch_conversations(conn, [documentid])
        except Exception as e:
            raise DatabaseError(f"Failed to update document: {str(e)}") from e

        if row:
            return self._to_document(row, conversations)
        if current is None:
            raise DocumentNotFoundError(f"Document {documentid} not found")
        raise InvalidStatusTransitionError(
            f"Document {documentid} cannot move from {current} to {status.value}")

    async def claim_for_processing(
        self, userid: str, documentid: str, lease_seconds: float
    ) -> Optional[Document]:
        """
        Take the processing lock for a document.

        Succeeds from ``uploaded`` or ``failed``, or from ``processing`` when
        the previous holder's lease has expired or was released. Each claim
        counts as one ingestion attempt.

        Returns:
            The claimed document, or None if another worker holds it or the
            document cannot be processed.
        """
        if not self.pool:
            raise DatabaseError("Database not connected")

        sources = [s.value for s in allowed_sources(DocumentStatus.PROCESSING)]
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE documents
                    SET status = 'processing',
                        attempts = attempts + 1,
                        lease_expires_at = now() + make_interval(secs => $3),
                        updated_at = now()
                    WHERE userid = $1 AND documentid = $2
                      AND (status = ANY($4::text[])
                           OR (status = 'processing'
                               AND (lease_expires_at IS NULL OR lease_expires_at < now())))
                    RETURNING {DOCUMENT_COLUMNS}
                    """,
                    userid,
                    documentid,
                    float(lease_seconds),
                    sources,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to claim document: {str(e)}") from e

        return self._to_document(row, {}) if row else None

    async def release_claim(
        self, userid: str, documentid: str, error: Optional[str] = None
    ) -> None:
        """Drop the processing lock so a redelivered job can claim it."""
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    UPDATE documents
                    SET lease_expires_at = NULL, last_error = $3, updated_at = now()
                    WHERE userid = $1 AND documentid = $2 AND status = 'processing'
                    """,
                    userid,
                    documentid,
                    error,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to release document: {str(e)}") from e

    async def create_conversation(self, userid: str, documentid: str) -> ConversationRef:
        """
        Start a new conversation on a document.

        Raises:
            DocumentNotFoundError: If the user has no such document.
        """
        if not self.pool:
            raise DatabaseError("Database not connected")

        conversationid = str(uuid.uuid4())
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO conversations (conversationid, documentid, userid)
                    SELECT $1, documentid, userid FROM documents
                    WHERE userid = $2 AND documentid = $3
                    RETURNING conversationid, created_at
                    """,
                    conversationid,
                    userid,
                    documentid,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to create conversation: {str(e)}") from e

        if not row:
            raise DocumentNotFoundError(f"Document {documentid} not found")
        return ConversationRef(**dict(row))

    async def get_conversation(
        self, userid: str, documentid: str, conversationid: str
    ) -> Optional[ConversationRef]:
        """Get a conversation if it belongs to the user's document."""
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT conversationid, created_at FROM conversations
                    WHERE userid = $1 AND documentid = $2 AND conversationid = $3
                    """,
                    userid,
                    documentid,
                    conversationid,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to fetch conversation: {str(e)}") from e

        return ConversationRef(**dict(row)) if row else None

    async def list_conversations(self, documentid: str) -> List[ConversationRef]:
        """List a document's conversations, oldest first."""
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                conversations = await self._fetch_conversations(conn, [documentid])
        except Exception as e:
            raise DatabaseError(f"Failed to list conversations: {str(e)}") from e

        return conversations.get(documentid, [])

    async def _fetch_conversations(
        self, conn: asyncpg.Connection, documentids: List[str]
    ) -> Dict[str, List[ConversationRef]]:
        if not documentids:
            return {}
        rows = await conn.fetch(
            """
            SELECT documentid, conversationid, created_at FROM conversations
            WHERE documentid = ANY($1::text[])
            ORDER BY created_at, conversationid
            """,
            documentids,
        )
        grouped: Dict[str, List[ConversationRef]] = {}
        for row in rows:
            grouped.setdefault(row["documentid"], []).append(
                ConversationRef(
                    conversationid=row["conversationid"],
                    created_at=row["created_at"],
                )
            )
        return grouped

    @staticmethod
    def _to_document(
        row: asyncpg.Record, conversations: Dict[str, List[ConversationRef]]
    ) -> Document:
        data = dict(row)
        data["status"] = DocumentStatus(data["status"])
        data["conversations"] = conversations.get(data["documentid"], [])
        return Document(**data)
