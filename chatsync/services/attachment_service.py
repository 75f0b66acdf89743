"""
Attachment handling on top of the blob store.

Handles upload path generation, storage path resolution for cleanup, and
local image previews for drafts handed back after a failed send.
"""
import io
import logging
from typing import Optional, Tuple
from urllib.parse import unquote, urlparse

from PIL import Image

from chatsync.config import settings
from chatsync.core.blob_store import BlobStore
from chatsync.schemas.message import Attachment, DraftAttachment
from chatsync.utils.datetime_utils import now_ms

logger = logging.getLogger(__name__)


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename to prevent security issues.

    Removes path traversal characters, null bytes, and limits length.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename
    """
    filename = filename.replace('/', '_').replace('\\', '_')
    filename = filename.replace('\x00', '')
    filename = filename.lstrip('.')

    if len(filename) > 200:
        name_parts = filename.rsplit('.', 1)
        if len(name_parts) == 2:
            name, ext = name_parts
            filename = f"{name[:200 - len(ext) - 1]}.{ext}"
        else:
            filename = filename[:200]

    return filename or "file"


def build_storage_path(name: str, mime: str, timestamp_ms: Optional[int] = None) -> str:
    """
    Storage path for a new attachment.

    Images go under images/, everything else under files/, each prefixed with
    the upload time so equal names never collide.
    """
    folder = "images" if mime.startswith("image/") else "files"
    if timestamp_ms is None:
        timestamp_ms = now_ms()
    return f"{folder}/{timestamp_ms}_{sanitize_filename(name)}"


def resolve_storage_path(attachment: Attachment) -> Optional[str]:
    """
    Find the blob path of a stored attachment.

    Uses the explicit path when present. Older records only carry the URL;
    the path is then taken from an encoded "/o/<path>" segment or, failing
    that, from the URL path itself.

    Args:
        attachment: Attachment reference from a message

    Returns:
        Storage path, or None when it cannot be determined
    """
    if attachment.path:
        return attachment.path
    if not attachment.url:
        return None

    parsed = urlparse(attachment.url)
    if "/o/" in parsed.path:
        encoded = parsed.path.split("/o/", 1)[1]
        return unquote(encoded) or None

    # For https://bucket.endpoint/<path> and memory://blobs/<path> the host
    # names the store, so the path is everything after it.
    path = unquote(parsed.path).lstrip("/")
    return path or None


def build_preview(data: bytes, size: Tuple[int, int] = None) -> Optional[bytes]:
    """
    Generate a JPEG preview for an image draft.

    Args:
        data: Original image bytes
        size: Bounding box of the preview

    Returns:
        JPEG bytes, or None when the bytes are not a readable image
    """
    if size is None:
        size = (settings.preview_size, settings.preview_size)
    try:
        image = Image.open(io.BytesIO(data))

        # Convert to RGB if necessary (PNG with transparency, etc.)
        if image.mode in ('RGBA', 'LA', 'P'):
            background = Image.new('RGB', image.size, (255, 255, 255))
            if image.mode == 'P':
                image = image.convert('RGBA')
            background.paste(image, mask=image.split()[-1] if image.mode in ('RGBA', 'LA') else None)
            image = background
        elif image.mode != 'RGB':
            image = image.convert('RGB')

        image.thumbnail(size, Image.Resampling.LANCZOS)

        preview_io = io.BytesIO()
        image.save(preview_io, format='JPEG', quality=85, optimize=True)
        return preview_io.getvalue()
    except Exception as e:
        logger.warning(f"Failed to generate preview: {e}")
        return None


def restore_draft_attachment(attachment: DraftAttachment) -> DraftAttachment:
    """Copy of a draft attachment with its local preview re-derived."""
    preview = build_preview(attachment.data) if attachment.is_image else None
    return attachment.model_copy(update={"preview": preview})


class AttachmentService:
    """Service for uploading and removing message attachments."""

    def __init__(self, blobs: BlobStore):
        """
        Initialize attachment service.

        Args:
            blobs: Blob store client
        """
        self.blobs = blobs

    async def upload(self, draft: DraftAttachment) -> Attachment:
        """
        Upload a draft attachment.

        Args:
            draft: File picked in the composer

        Returns:
            Attachment reference to store on the message

        Raises:
            BlobStoreError: If the upload fails
        """
        path = build_storage_path(draft.name, draft.mime)

        def report_progress(consumed: int, total: Optional[int]) -> None:
            if total:
                logger.debug(f"Upload {path}: {consumed * 100 // total}%")

        url = await self.blobs.upload(
            draft.data,
            path,
            content_type=draft.mime,
            progress_callback=report_progress,
        )
        logger.info(f"Attachment uploaded: {path} ({draft.size} bytes)")
        return Attachment(url=url, name=draft.name, mime=draft.mime, size=draft.size, path=path)

    async def delete(self, attachment: Attachment) -> bool:
        """
        Delete an attachment's blob.

        Failures are logged and reported as False, never raised.

        Args:
            attachment: Attachment reference

        Returns:
            True if exactly one delete was issued and succeeded
        """
        path = resolve_storage_path(attachment)
        if not path:
            logger.warning(f"Could not resolve storage path for attachment {attachment.name}")
            return False

        try:
            await self.blobs.delete(path)
            return True
        except Exception as e:
            logger.error(f"Failed to delete attachment blob {path}: {e}")
            return False
