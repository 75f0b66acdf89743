"""
Conversation repository for the shared conversation record.
"""
from typing import List

from chatsync.config import settings
from chatsync.core.record_store import DELETE_FIELD, RecordStore
from chatsync.repositories.base import BaseRepository
from chatsync.schemas.conversation import Conversation
from chatsync.schemas.message import Message
from chatsync.utils.datetime_utils import now_ms


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for conversation records (messages + typing map)."""

    def __init__(self, store: RecordStore):
        super().__init__(Conversation, store, settings.conversations_collection)

    async def append_message(self, conversation_id: str, message: Message) -> None:
        """
        Append a message with the store's concurrency-safe append.

        Raises:
            RecordMissing: If the conversation does not exist
        """
        await self.store.append_to_array(
            self.collection,
            conversation_id,
            "messages",
            message.to_record()
        )

    async def replace_messages(self, conversation_id: str, messages: List[Message]) -> None:
        """Write back the whole message list (array fields are replaced wholesale)."""
        await self.update(
            conversation_id,
            {"messages": [message.to_record() for message in messages]}
        )

    async def set_typing(self, conversation_id: str, participant_id: str, timestamp_ms: int = None) -> None:
        """Set the participant's single typing entry."""
        if timestamp_ms is None:
            timestamp_ms = now_ms()
        await self.update(conversation_id, {("typing", participant_id): timestamp_ms})

    async def clear_typing(self, conversation_id: str, participant_id: str) -> None:
        """Remove the participant's typing entry; absence means not typing."""
        await self.update(conversation_id, {("typing", participant_id): DELETE_FIELD})
