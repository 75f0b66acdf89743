"""
Summary projection: per-participant conversation previews.

project() is the single derivation of a participant's preview from a message
list. SummaryProjector writes projections into both participants' summary
records; send and delete both go through it so the two paths can never
compute the preview differently.
"""
import asyncio
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from chatsync.core.exceptions import StoreWriteFailure
from chatsync.core.record_store import RecordStore
from chatsync.repositories.summary_repo import SummaryRepository
from chatsync.schemas.conversation import ConversationSummary, SummaryProjection
from chatsync.schemas.message import NO_MESSAGES_PREVIEW, Message
from chatsync.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


def project(messages: List[Message], viewer_id: str, now: Optional[datetime] = None) -> SummaryProjection:
    """
    Derive a participant's summary from a message list.

    Args:
        messages: Conversation messages in sequence order
        viewer_id: Participant whose summary is derived
        now: Write time stamped on the projection

    Returns:
        Projection of the newest message visible to the viewer, or the
        "No messages yet" sentinel when none is visible
    """
    updated_at = now or utc_now()
    for message in reversed(messages):
        if message.is_visible_to(viewer_id):
            return SummaryProjection(preview=message.preview, updated_at=updated_at, message=message)
    return SummaryProjection(preview=NO_MESSAGES_PREVIEW, updated_at=updated_at)


class SummaryProjector:
    """Writes projections into both participants' summaries."""

    def __init__(self, store: RecordStore):
        self.summaries = SummaryRepository(store)

    async def apply_send(self, conversation_id: str, message: Message, sender_id: str, recipient_id: str) -> None:
        """
        Record a newly sent message in both summaries.

        The sender's copy is marked seen, the recipient's unseen. The two
        updates are independent; one failing does not affect the other.
        """
        now = utc_now()
        projection = project([message], sender_id, now=now)
        await asyncio.gather(
            self._write(sender_id, conversation_id, projection, is_seen=True),
            self._write(recipient_id, conversation_id, projection, is_seen=False),
        )

    async def apply_messages(
        self,
        conversation_id: str,
        messages: List[Message],
        participant_ids: Iterable[str]
    ) -> None:
        """Recompute each participant's preview from the current message list."""
        now = utc_now()
        await asyncio.gather(*[
            self._write(participant_id, conversation_id, project(messages, participant_id, now=now))
            for participant_id in participant_ids
        ])

    async def mark_seen_by_owner(self, participant_id: str, conversation_id: str) -> bool:
        """Mark the participant's own summary as seen (best-effort)."""
        try:
            updated = await self.summaries.update_summary(
                participant_id,
                conversation_id,
                lambda entry: entry.model_copy(update={"is_seen_by_owner": True}),
            )
        except Exception as e:
            logger.error(f"{StoreWriteFailure.__name__}: seen flag for {participant_id}/{conversation_id}: {e}")
            return False
        return updated is not None

    async def _write(
        self,
        participant_id: str,
        conversation_id: str,
        projection: SummaryProjection,
        is_seen: Optional[bool] = None
    ) -> bool:
        def change(entry: ConversationSummary) -> ConversationSummary:
            update = {"last_message_preview": projection.preview, "updated_at": projection.updated_at}
            if is_seen is not None:
                update["is_seen_by_owner"] = is_seen
            return entry.model_copy(update=update)

        try:
            updated = await self.summaries.update_summary(participant_id, conversation_id, change)
        except Exception as e:
            logger.error(f"{StoreWriteFailure.__name__}: summary of {participant_id}/{conversation_id}: {e}")
            return False

        if updated is None:
            logger.warning(f"No summary entry for {participant_id}/{conversation_id}, skipping")
            return False
        return True
