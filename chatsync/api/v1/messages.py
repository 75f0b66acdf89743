"""
Message API routes.
Provides endpoints for sending and deleting messages and for placing the
message context menu.
"""
import mimetypes
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from chatsync.config import settings
from chatsync.core.blob_store import BlobStore
from chatsync.core.record_store import RecordStore
from chatsync.dependencies import get_blob_store, get_current_participant, get_record_store
from chatsync.schemas.message import DeleteResult, DraftAttachment, MenuPlacement, MenuPlacementRequest
from chatsync.services.message_service import MessageService
from chatsync.utils.menu_placement import choose_menu_placement

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


async def read_attachment(file: Optional[UploadFile]) -> Optional[DraftAttachment]:
    """
    Read an uploaded form file into a draft attachment.

    Raises:
        HTTPException: 413 if the file exceeds max_upload_size
    """
    if file is None or not file.filename:
        return None

    data = await file.read()
    if len(data) > settings.max_upload_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large (max {settings.max_upload_size} bytes)",
        )

    mime = file.content_type
    if not mime or mime == "application/octet-stream":
        mime = mimetypes.guess_type(file.filename)[0] or "application/octet-stream"
    return DraftAttachment(name=file.filename, mime=mime, data=data)


@router.post(
    "/",
    status_code=status.HTTP_201_CREATED,
    summary="Send a new message",
    description="Send text and/or one attachment. The attachment is uploaded before the message is committed."
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def send_message(
    request: Request,
    conversation_id: str = Form(...),
    partner_id: str = Form(...),
    text: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    participant_id: str = Depends(get_current_participant),
    store: RecordStore = Depends(get_record_store),
    blobs: BlobStore = Depends(get_blob_store)
):
    """
    Send a new message to a conversation.

    - **conversation_id**: Target conversation
    - **partner_id**: The other participant
    - **text**: Message text (optional when a file is attached)
    - **file**: Attachment (optional when text is given)
    """
    attachment = await read_attachment(file)
    service = MessageService(store, blobs, participant_id, partner_id)
    message = await service.send(conversation_id, text=text, attachment=attachment)
    return message.to_record()


@router.delete(
    "/{conversation_id}/{message_index}",
    response_model=DeleteResult,
    summary="Delete a message",
    description="Delete for the caller only, or for everyone when the caller sent it."
)
async def delete_message(
    conversation_id: str,
    message_index: int,
    partner_id: str = Query(..., min_length=1),
    for_everyone: bool = Query(False),
    expected_created_at: Optional[str] = Query(None, description="createdAt the caller saw at that index"),
    participant_id: str = Depends(get_current_participant),
    store: RecordStore = Depends(get_record_store),
    blobs: BlobStore = Depends(get_blob_store)
):
    """
    Delete a message.

    - **message_index**: Position in the conversation's message sequence
    - **for_everyone**: Remove for both participants (sender only)
    """
    service = MessageService(store, blobs, participant_id, partner_id)
    return await service.delete(
        conversation_id,
        message_index,
        for_everyone=for_everyone,
        expected_created_at=expected_created_at,
    )


@router.post(
    "/menu-placement",
    response_model=MenuPlacement,
    summary="Place the message menu",
    description="Choose where a message's context menu opens from the space around it."
)
async def menu_placement(
    placement_data: MenuPlacementRequest
):
    """Choose the menu's vertical placement and horizontal alignment."""
    return choose_menu_placement(
        placement_data.space_above,
        placement_data.space_below,
        placement_data.space_left,
        placement_data.space_right,
        placement_data.is_own_message,
    )
