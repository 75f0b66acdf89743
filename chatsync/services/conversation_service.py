"""
Conversation service: starting conversations and listing summaries.
"""
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from chatsync.core.record_store import RecordStore
from chatsync.repositories.conversation_repo import ConversationRepository
from chatsync.repositories.summary_repo import SummaryRepository
from chatsync.schemas.conversation import Conversation, ConversationSummary
from chatsync.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class ConversationService:
    """Service for conversation bootstrap and summary listing."""

    def __init__(self, store: RecordStore):
        """
        Initialize conversation service.

        Args:
            store: Shared record store
        """
        self.conversations = ConversationRepository(store)
        self.summaries = SummaryRepository(store)

    async def find_conversation(self, owner_id: str, partner_id: str) -> Optional[str]:
        """Conversation ID the owner already has with the partner, if any."""
        for summary in await self.summaries.list_summaries(owner_id):
            if summary.receiver_id == partner_id:
                return summary.conversation_id
        return None

    async def create_conversation(self, owner_id: str, partner_id: str) -> str:
        """
        Create a conversation between two participants.

        Creates the conversation record and one summary entry per participant.
        If the owner already has a conversation with the partner, that one is
        returned instead.

        Args:
            owner_id: Participant starting the conversation
            partner_id: Other participant

        Returns:
            Conversation ID

        Raises:
            ValueError: If both IDs are the same participant
        """
        if owner_id == partner_id:
            raise ValueError("Cannot start a conversation with yourself")

        existing = await self.find_conversation(owner_id, partner_id)
        if existing:
            return existing

        conversation_id = uuid.uuid4().hex
        now = utc_now()
        await self.conversations.create(conversation_id, Conversation(created_at=now))
        await asyncio.gather(
            self.summaries.add_summary(
                owner_id,
                ConversationSummary(conversation_id=conversation_id, receiver_id=partner_id, updated_at=now),
            ),
            self.summaries.add_summary(
                partner_id,
                ConversationSummary(conversation_id=conversation_id, receiver_id=owner_id, updated_at=now),
            ),
        )

        logger.info(f"Conversation {conversation_id} created by {owner_id} with {partner_id}")
        return conversation_id

    async def list_summaries(self, participant_id: str) -> List[ConversationSummary]:
        """Participant's conversation summaries, most recently updated first."""
        summaries = await self.summaries.list_summaries(participant_id)
        oldest = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(summaries, key=lambda s: s.updated_at or oldest, reverse=True)
