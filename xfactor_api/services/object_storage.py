"""MinIO (S3-compatible) storage for lesson material PDFs.

Objects live in a private bucket; clients only ever receive presigned URLs
with an explicit expiry. The minio client is blocking, so every call runs in
a worker thread.
"""

from __future__ import annotations

import asyncio
import io
import logging
from datetime import timedelta
from typing import Optional

from minio import Minio
from minio.error import S3Error

from xfactor_api.core.config import settings
from xfactor_api.core.errors import UpstreamError

logger = logging.getLogger(__name__)


class ObjectStorage:
    """Service for interacting with the private materials bucket."""

    def __init__(self, client: Optional[Minio] = None, bucket: Optional[str] = None):
        self.bucket = bucket or settings.MINIO_BUCKET
        self.client = client or Minio(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
            region=settings.MINIO_REGION,
        )

    async def ensure_bucket(self) -> None:
        def _ensure() -> None:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
                logger.info("Created bucket: %s", self.bucket)

        try:
            await asyncio.to_thread(_ensure)
        except S3Error as e:
            logger.warning("Error checking/creating bucket %s: %s", self.bucket, e)

    async def bucket_ready(self) -> bool:
        return await asyncio.to_thread(self.client.bucket_exists, self.bucket)

    async def upload_bytes(
        self,
        data: bytes,
        object_name: str,
        content_type: str = "application/pdf",
    ) -> str:
        """Upload ``data`` and return the object name."""
        try:
            await asyncio.to_thread(
                self.client.put_object,
                self.bucket,
                object_name,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except S3Error as e:
            logger.error("Upload failed for %s: %s", object_name, e)
            raise UpstreamError("Failed to upload file to storage") from e
        logger.info("Uploaded: %s (%d bytes)", object_name, len(data))
        return object_name

    async def delete(self, object_name: str) -> bool:
        try:
            await asyncio.to_thread(self.client.remove_object, self.bucket, object_name)
            logger.info("Deleted: %s", object_name)
            return True
        except S3Error as e:
            logger.warning("Delete failed for %s: %s", object_name, e)
            return False

    async def presigned_url(self, object_name: str, expires: timedelta) -> str:
        """Signed GET URL for exactly one object, valid for ``expires``."""
        try:
            return await asyncio.to_thread(
                self.client.presigned_get_object,
                self.bucket,
                object_name,
                expires=expires,
            )
        except S3Error as e:
            logger.error("Presigned URL failed for %s: %s", object_name, e)
            raise UpstreamError("Unable to generate secure access to the file") from e


# Singleton instance (lazy initialization)
_object_storage: Optional[ObjectStorage] = None


def get_object_storage() -> ObjectStorage:
    global _object_storage
    if _object_storage is None:
        _object_storage = ObjectStorage()
    return _object_storage
