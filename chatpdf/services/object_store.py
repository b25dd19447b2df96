"""S3-compatible object store for uploaded PDFs."""

import asyncio
import logging
from typing import Any, Optional, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from chatpdf.core.config import settings
from chatpdf.core.exceptions import ObjectStoreError

logger = logging.getLogger(__name__)


def object_key(userid: str, documentid: str, filename: str) -> str:
    """Build the per-user, per-document key an upload is written to."""
    return f"{userid}/{documentid}/{filename}"


def parse_object_key(key: str) -> Tuple[str, str, str]:
    """
    Split an object key into (userid, documentid, filename).

    Raises:
        ValueError: If the key does not follow the upload layout.
    """
    parts = key.split("/", 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Unexpected object key layout: {key!r}")
    return parts[0], parts[1], parts[2]


class ObjectStoreService:
    """Reads uploads and issues presigned upload URLs."""

    def __init__(self) -> None:
        """Initialize the object store service."""
        self.client: Optional[Any] = None
        self.bucket = settings.s3_bucket
        self.expiry = settings.presigned_url_expiry_seconds

    async def connect(self) -> None:
        """Create the S3 client."""
        if self.client is None:
            self.client = boto3.client(
                "s3",
                region_name=settings.s3_region,
                endpoint_url=settings.s3_endpoint_url,
                config=Config(signature_version="s3v4", retries={"max_attempts": 3}),
            )

    async def disconnect(self) -> None:
        """Close the S3 client."""
        if self.client is not None:
            self.client.close()
            self.client = None

    async def get_object(self, key: str) -> bytes:
        """
        Download an object.

        Args:
            key: Object key within the bucket.

        Returns:
            Object body.

        Raises:
            ObjectStoreError: If the download fails.
        """
        if self.client is None:
            raise ObjectStoreError("Object store not connected")

        def _download() -> bytes:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()

        try:
            return await asyncio.to_thread(_download)
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"Failed to read {key}: {str(e)}") from e

    async def generate_upload_url(self, key: str) -> str:
        """
        Create a time-limited URL for a direct PUT upload.

        Args:
            key: Object key the client will write.

        Returns:
            Presigned URL.
        """
        if self.client is None:
            raise ObjectStoreError("Object store not connected")

        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "put_object",
                Params={
                    "Bucket": self.bucket,
                    "Key": key,
                    "ContentType": "application/pdf",
                },
                ExpiresIn=self.expiry,
                HttpMethod="PUT",
            )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(
                f"Failed to presign upload for {key}: {str(e)}") from e
