"""
Blob storage backends for message attachments.

- OSSBlobStore: Alibaba Cloud OSS. The SDK is blocking, so calls run in a
  worker thread to keep the event loop responsive.
- InMemoryBlobStore: process-local store for tests and local runs.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

import oss2

from chatsync.config import settings

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, Optional[int]], None]


class BlobStoreError(Exception):
    """Raised when a blob operation fails."""
    pass


class BlobStore(ABC):
    """put/getURL/delete access to attachment blobs."""

    @abstractmethod
    async def upload(
        self,
        data: bytes,
        path: str,
        content_type: str = "application/octet-stream",
        progress_callback: Optional[ProgressCallback] = None
    ) -> str:
        """Store bytes at path and return the public URL."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete the blob at path."""

    @abstractmethod
    def get_url(self, path: str) -> str:
        """Public URL for a stored path."""


class OSSBlobStore(BlobStore):
    """Blob store backed by an Alibaba Cloud OSS bucket."""

    def __init__(
        self,
        access_key_id: str,
        access_key_secret: str,
        endpoint: str,
        bucket_name: str
    ):
        """Initialize OSS bucket client with credentials."""
        if not access_key_id or not access_key_secret:
            logger.warning("OSS credentials not configured. Attachment upload will fail.")

        self.endpoint = endpoint
        self.bucket_name = bucket_name
        self.auth = oss2.Auth(access_key_id, access_key_secret)
        self.bucket = oss2.Bucket(self.auth, endpoint, bucket_name)

    def get_url(self, path: str) -> str:
        # Public endpoint, not the internal one
        public_endpoint = self.endpoint.replace('-internal', '')
        return f"https://{self.bucket_name}.{public_endpoint}/{path}"

    async def upload(
        self,
        data: bytes,
        path: str,
        content_type: str = "application/octet-stream",
        progress_callback: Optional[ProgressCallback] = None
    ) -> str:
        try:
            result = await asyncio.to_thread(
                self.bucket.put_object,
                path,
                data,
                headers={
                    'Content-Type': content_type,
                    'Cache-Control': 'public, max-age=31536000',
                },
                progress_callback=progress_callback,
            )
        except oss2.exceptions.OssError as e:
            logger.error(f"OSS upload failed for {path}: {e}")
            raise BlobStoreError(f"Upload failed: {e}") from e

        if result.status != 200:
            raise BlobStoreError(f"Upload failed for {path}: HTTP {result.status}")

        logger.info(f"Blob uploaded: {path} ({len(data)} bytes)")
        return self.get_url(path)

    async def delete(self, path: str) -> None:
        try:
            await asyncio.to_thread(self.bucket.delete_object, path)
        except oss2.exceptions.OssError as e:
            raise BlobStoreError(f"Delete failed for {path}: {e}") from e
        logger.info(f"Blob deleted: {path}")


class InMemoryBlobStore(BlobStore):
    """Blob store keeping bytes in a dict."""

    def __init__(self, base_url: str = "memory://blobs"):
        self.base_url = base_url.rstrip("/")
        self.blobs: Dict[str, bytes] = {}

    def get_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    async def upload(
        self,
        data: bytes,
        path: str,
        content_type: str = "application/octet-stream",
        progress_callback: Optional[ProgressCallback] = None
    ) -> str:
        self.blobs[path] = bytes(data)
        if progress_callback:
            progress_callback(len(data), len(data))
        return self.get_url(path)

    async def delete(self, path: str) -> None:
        if path not in self.blobs:
            raise BlobStoreError(f"No blob at {path}")
        del self.blobs[path]


def build_blob_store() -> BlobStore:
    """Create the blob store selected by settings.blob_store_backend."""
    if settings.blob_store_backend == "oss":
        return OSSBlobStore(
            settings.oss_access_key_id,
            settings.oss_access_key_secret,
            settings.oss_endpoint,
            settings.oss_bucket_name,
        )
    return InMemoryBlobStore(settings.blob_public_base_url)


# Global blob store instance
blob_store = build_blob_store()
