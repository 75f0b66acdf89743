"""
Conversation API routes.
Provides endpoints for creating conversations, listing summaries, fetching a
one-shot view, marking messages seen and publishing typing state.
"""
import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from chatsync.core.blob_store import BlobStore
from chatsync.core.record_store import RecordStore
from chatsync.dependencies import get_blob_store, get_current_participant, get_record_store
from chatsync.repositories.conversation_repo import ConversationRepository
from chatsync.repositories.user_repo import UserRepository
from chatsync.schemas.conversation import (
    ConversationCreate,
    ConversationCreateResponse,
    ConversationSummary,
    MarkSeenResponse,
    TypingUpdate,
)
from chatsync.services.conversation_service import ConversationService
from chatsync.services.message_service import MessageService
from chatsync.services.sync_service import render_view
from chatsync.services.typing_service import TypingSignaler

router = APIRouter()


@router.post(
    "/",
    response_model=ConversationCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a conversation",
    description="Create a conversation with another participant, or return the existing one."
)
async def create_conversation(
    conversation_data: ConversationCreate,
    participant_id: str = Depends(get_current_participant),
    store: RecordStore = Depends(get_record_store)
):
    """
    Start a conversation.

    - **partner_id**: Participant to talk to
    """
    service = ConversationService(store)
    try:
        conversation_id = await service.create_conversation(participant_id, conversation_data.partner_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return ConversationCreateResponse(
        conversation_id=conversation_id,
        participant_ids=[participant_id, conversation_data.partner_id],
    )


@router.get(
    "/summaries",
    response_model=List[ConversationSummary],
    summary="List conversation summaries",
    description="The caller's conversation summaries, most recently updated first."
)
async def list_summaries(
    participant_id: str = Depends(get_current_participant),
    store: RecordStore = Depends(get_record_store)
):
    """List the caller's conversation summaries."""
    return await ConversationService(store).list_summaries(participant_id)


@router.get(
    "/{conversation_id}/view",
    summary="Get conversation view",
    description="Snapshot of the conversation as the caller sees it right now."
)
async def get_conversation_view(
    conversation_id: str,
    partner_id: str = Query(..., min_length=1),
    participant_id: str = Depends(get_current_participant),
    store: RecordStore = Depends(get_record_store)
):
    """
    Get a one-shot conversation view.

    - **partner_id**: The other participant
    """
    users = UserRepository(store)
    conversation, partner, viewer = await asyncio.gather(
        ConversationRepository(store).get(conversation_id),
        users.get(partner_id),
        users.get(participant_id),
    )
    view = render_view(conversation_id, participant_id, partner_id, conversation, partner, viewer)
    return view.to_payload()


@router.post(
    "/{conversation_id}/seen",
    response_model=MarkSeenResponse,
    summary="Mark messages seen",
    description="Add the caller to seenBy of every partner message in one batched write."
)
async def mark_seen(
    conversation_id: str,
    partner_id: Optional[str] = Query(None),
    participant_id: str = Depends(get_current_participant),
    store: RecordStore = Depends(get_record_store),
    blobs: BlobStore = Depends(get_blob_store)
):
    """Mark the partner's messages as seen by the caller."""
    service = MessageService(store, blobs, participant_id, partner_id or "")
    updated_count = await service.mark_seen(conversation_id)
    return MarkSeenResponse(success=True, updated_count=updated_count)


@router.put(
    "/{conversation_id}/typing",
    summary="Publish typing state",
    description="Set or clear the caller's typing entry."
)
async def update_typing(
    conversation_id: str,
    typing_data: TypingUpdate,
    participant_id: str = Depends(get_current_participant),
    store: RecordStore = Depends(get_record_store)
):
    """
    Publish typing state.

    - **is_typing**: True to publish, False to clear
    """
    signaler = TypingSignaler(store, conversation_id, participant_id)
    success = await signaler.set_typing(typing_data.is_typing)
    return {"success": success, "is_typing": typing_data.is_typing}
