"""
User API routes.
Provides endpoints for presence lookup and blocking.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from chatsync.core.record_store import RecordStore
from chatsync.dependencies import get_current_participant, get_record_store
from chatsync.schemas.user import BlockResponse, PresenceResponse
from chatsync.services.user_service import UserService

router = APIRouter()


@router.get(
    "/{user_id}/presence",
    response_model=PresenceResponse,
    summary="Get presence",
    description="Last presence the participant asserted."
)
async def get_presence(
    user_id: str,
    participant_id: str = Depends(get_current_participant),
    store: RecordStore = Depends(get_record_store)
):
    """Get a participant's presence."""
    presence = await UserService(store).get_presence(user_id)
    if presence is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    return PresenceResponse(
        participant_id=user_id,
        is_online=presence.is_online,
        last_seen=presence.last_seen,
    )


@router.post(
    "/{user_id}/block",
    response_model=BlockResponse,
    summary="Toggle block",
    description="Block the participant, or unblock them if already blocked."
)
async def toggle_block(
    user_id: str,
    participant_id: str = Depends(get_current_participant),
    store: RecordStore = Depends(get_record_store)
):
    """Toggle whether the caller blocks a participant."""
    if user_id == participant_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot block yourself")

    blocked = await UserService(store).toggle_block(participant_id, user_id)
    return BlockResponse(participant_id=user_id, blocked=blocked)
