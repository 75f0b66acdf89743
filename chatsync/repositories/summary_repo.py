"""
Summary repository for per-participant conversation summaries.

Each participant owns one record holding the list of their conversation
summaries. Entries are updated by reading the list, changing one entry and
writing the list back, so concurrent writers can overwrite each other.
"""
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from chatsync.config import settings
from chatsync.core.record_store import RecordStore
from chatsync.repositories.base import BaseRepository
from chatsync.schemas.conversation import ConversationSummary


class SummaryList(BaseModel):
    """Record shape of a participant's summary collection."""

    chats: List[ConversationSummary] = Field(default_factory=list)


class SummaryRepository(BaseRepository[SummaryList]):
    """Repository for summary lists keyed by participant id."""

    def __init__(self, store: RecordStore):
        super().__init__(SummaryList, store, settings.summaries_collection)

    async def list_summaries(self, participant_id: str) -> List[ConversationSummary]:
        """Get all summaries of a participant (empty when none)."""
        summaries = await self.get(participant_id)
        return list(summaries.chats) if summaries else []

    async def add_summary(self, participant_id: str, summary: ConversationSummary) -> None:
        """Add or replace the participant's entry for a conversation."""
        current = await self.list_summaries(participant_id)
        entries = [s for s in current if s.conversation_id != summary.conversation_id]
        entries.append(summary)
        await self._write(participant_id, entries)

    async def update_summary(
        self,
        participant_id: str,
        conversation_id: str,
        change: Callable[[ConversationSummary], ConversationSummary]
    ) -> Optional[ConversationSummary]:
        """
        Read-modify-write one summary entry.

        Args:
            participant_id: Owner of the summary list
            conversation_id: Conversation whose entry changes
            change: Function returning the updated entry

        Returns:
            The updated entry, or None when the participant has no entry
            for this conversation (nothing is written)
        """
        current = await self.get(participant_id)
        if current is None:
            return None

        entries = list(current.chats)
        for position, entry in enumerate(entries):
            if entry.conversation_id == conversation_id:
                entries[position] = change(entry)
                await self._write(participant_id, entries)
                return entries[position]
        return None

    async def _write(self, participant_id: str, entries: List[ConversationSummary]) -> None:
        chats = [entry.to_record() for entry in entries]
        if await self.exists(participant_id):
            await self.update(participant_id, {"chats": chats})
        else:
            await self.store.set(self.collection, participant_id, {"chats": chats})
