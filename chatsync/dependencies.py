"""
Dependency injection for FastAPI routes.
Provides the store clients and the calling participant's identity.
"""
from typing import Optional

from fastapi import Header, HTTPException, status

from chatsync.core.blob_store import BlobStore, blob_store
from chatsync.core.record_store import RecordStore, record_store


def get_record_store() -> RecordStore:
    """Shared record store used by the routes."""
    return record_store


def get_blob_store() -> BlobStore:
    """Blob store used by the routes."""
    return blob_store


async def get_current_participant(
    x_participant_id: Optional[str] = Header(None)
) -> str:
    """
    Dependency to get the calling participant.

    Authentication is handled upstream; the caller's participant ID arrives
    in the X-Participant-Id header.

    Returns:
        Participant ID

    Raises:
        HTTPException: 401 if the header is missing or blank

    Example:
        ```python
        @router.get("/me")
        async def me(participant_id: str = Depends(get_current_participant)):
            return {"participant_id": participant_id}
        ```
    """
    if not x_participant_id or not x_participant_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Participant-Id header",
        )
    return x_participant_id.strip()
