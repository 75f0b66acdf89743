"""
User repository for participant records (profile, presence, block list).
"""
from typing import Any, Dict, Optional

from chatsync.config import settings
from chatsync.core.record_store import RecordStore
from chatsync.repositories.base import BaseRepository
from chatsync.schemas.user import ParticipantRecord
from chatsync.utils.datetime_utils import to_iso_utc, utc_now


class UserRepository(BaseRepository[ParticipantRecord]):
    """Repository for participant records."""

    def __init__(self, store: RecordStore):
        super().__init__(ParticipantRecord, store, settings.users_collection)

    def to_model(self, record_id: str, record: Optional[Dict[str, Any]]) -> Optional[ParticipantRecord]:
        if record is None:
            return None
        return ParticipantRecord.model_validate({**record, "id": record.get("id") or record_id})

    async def set_presence(self, participant_id: str, is_online: bool) -> None:
        """
        Assert the participant's presence.

        Raises:
            RecordMissing: If the participant record does not exist
        """
        await self.update(
            participant_id,
            {"isOnline": is_online, "lastSeen": to_iso_utc(utc_now())}
        )

    async def set_blocked(self, participant_id: str, blocked: list) -> None:
        """Replace the participant's block list."""
        await self.update(participant_id, {"blocked": list(blocked)})
