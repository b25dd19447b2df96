"""Upload trigger: turns object-created notifications into ingestion jobs."""

import logging
from typing import List, Optional
from urllib.parse import unquote_plus

from chatpdf.models.document import Document
from chatpdf.models.job import IngestionJob
from chatpdf.services.database import DocumentRegistry
from chatpdf.services.object_store import parse_object_key
from chatpdf.services.queue import IngestionQueue

logger = logging.getLogger(__name__)


class UploadHandler:
    """Registers uploaded documents and enqueues their ingestion."""

    def __init__(self, registry: DocumentRegistry, queue: IngestionQueue) -> None:
        self.registry = registry
        self.queue = queue

    async def handle_upload(self, key: str, size: Optional[int] = None) -> Document:
        """
        Register one uploaded object and enqueue it.

        Args:
            key: Object key in ``{userid}/{documentid}/{filename}`` layout.
            size: Object size in bytes.

        Returns:
            The registry entry, in ``uploaded`` status.
        """
        userid, documentid, filename = parse_object_key(key)
        document = await self.registry.create(
            userid=userid,
            documentid=documentid,
            filename=filename,
            object_key=key,
            filesize=size,
        )
        await self.queue.send(IngestionJob(userid=userid, documentid=documentid))
        logger.info(f"Registered upload {key} for user {userid}")
        return document

    async def handle_event(self, event: dict) -> List[Document]:
        """
        Handle an S3 event notification.

        Records that are not object-created events or whose key does not
        follow the upload layout are skipped.

        Args:
            event: Notification body with a ``Records`` list.

        Returns:
            Registered documents.
        """
        documents = []
        for record in event.get("Records", []):
            if not record.get("eventName", "ObjectCreated").startswith("ObjectCreated"):
                continue
            obj = record.get("s3", {}).get("object", {})
            key = obj.get("key")
            if not key:
                logger.warning("Upload event record without object key, skipping")
                continue
            key = unquote_plus(key)
            try:
                documents.append(await self.handle_upload(key, obj.get("size")))
            except ValueError as e:
                logger.warning(f"Skipping upload event: {str(e)}")
        return documents
