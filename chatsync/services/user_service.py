"""
User service: participant records, presence lookup and blocking.
"""
import logging
from typing import Optional

from chatsync.core.exceptions import RecordMissing
from chatsync.core.record_store import RecordStore
from chatsync.repositories.user_repo import UserRepository
from chatsync.schemas.user import ParticipantRecord, PresenceRecord

logger = logging.getLogger(__name__)


class UserService:
    """Service for participant operations."""

    def __init__(self, store: RecordStore):
        self.users = UserRepository(store)

    async def register(self, participant_id: str, username: Optional[str] = None) -> ParticipantRecord:
        """Create the participant's record unless it already exists."""
        existing = await self.users.get(participant_id)
        if existing:
            return existing
        return await self.users.create(participant_id, ParticipantRecord(id=participant_id, username=username))

    async def get_presence(self, participant_id: str) -> Optional[PresenceRecord]:
        """Participant's last asserted presence, None if unknown."""
        participant = await self.users.get(participant_id)
        return participant.presence if participant else None

    async def toggle_block(self, viewer_id: str, partner_id: str) -> bool:
        """
        Block or unblock a participant.

        Args:
            viewer_id: Participant whose block list changes
            partner_id: Participant to block or unblock

        Returns:
            True if the partner is blocked afterwards

        Raises:
            RecordMissing: If the viewer has no record
        """
        viewer = await self.users.get(viewer_id)
        if viewer is None:
            raise RecordMissing(self.users.collection, viewer_id)

        if partner_id in viewer.blocked:
            blocked = [pid for pid in viewer.blocked if pid != partner_id]
            is_blocked = False
        else:
            blocked = viewer.blocked + [partner_id]
            is_blocked = True

        await self.users.set_blocked(viewer_id, blocked)
        logger.info(f"{viewer_id} {'blocked' if is_blocked else 'unblocked'} {partner_id}")
        return is_blocked
