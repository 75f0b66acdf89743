"""
Chat session: everything one open conversation screen needs.

Bundles a synchronizer, a typing signaler and a message service for one
(viewer, partner, conversation) triple and owns their teardown.
"""
import asyncio
import logging
from typing import AsyncIterator, Optional, Set

from chatsync.core.blob_store import BlobStore
from chatsync.core.exceptions import InvalidSendState
from chatsync.core.record_store import RecordStore
from chatsync.schemas.conversation import ConversationView
from chatsync.schemas.message import DeleteResult, DraftAttachment, Message
from chatsync.services.message_service import MessageService
from chatsync.services.presence_service import PresenceSession
from chatsync.services.sync_service import ConversationSynchronizer
from chatsync.services.typing_service import TypingSignaler

logger = logging.getLogger(__name__)


class ChatSession:
    """One viewer's open conversation with one partner."""

    def __init__(
        self,
        store: RecordStore,
        blobs: BlobStore,
        conversation_id: str,
        viewer_id: str,
        partner_id: str,
        presence: Optional[PresenceSession] = None
    ):
        self.conversation_id = conversation_id
        self.viewer_id = viewer_id
        self.partner_id = partner_id
        self.presence = presence

        self.sync = ConversationSynchronizer(store, conversation_id, viewer_id, partner_id)
        self.typing = TypingSignaler(store, conversation_id, viewer_id)
        self.messages = MessageService(store, blobs, viewer_id, partner_id, typing=self.typing)

        self._mark_seen_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._open = False

    @property
    def view(self) -> Optional[ConversationView]:
        return self.sync.latest

    @property
    def is_blocked(self) -> bool:
        return bool(self.sync.latest and self.sync.latest.is_blocked)

    async def open(self) -> None:
        """Start syncing and mark the partner's messages seen."""
        if self._open:
            return
        self._open = True
        self.sync.add_listener(self._on_view)
        await self.sync.start()
        await self._mark_seen()

    async def close(self) -> None:
        """Stop every timer, task and subscription of this session."""
        if not self._open:
            return
        self._open = False
        await self.typing.close()
        await self.sync.close()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        if self.presence:
            await self.presence.stop()
        logger.debug(f"Chat session closed for {self.viewer_id} in {self.conversation_id}")

    def views(self) -> AsyncIterator[ConversationView]:
        return self.sync.views()

    async def send(self, text: Optional[str] = None, attachment: Optional[DraftAttachment] = None) -> Message:
        """
        Send a message.

        Raises:
            InvalidSendState: If the conversation is blocked
        """
        if self.is_blocked:
            raise InvalidSendState("Conversation is blocked")
        return await self.messages.send(self.conversation_id, text=text, attachment=attachment)

    async def note_input(self, text: Optional[str]) -> None:
        """Forward composer input to the typing signaler."""
        if self.is_blocked:
            raise InvalidSendState("Conversation is blocked")
        await self.typing.note_input(text, blocked=False)

    async def delete(self, message_index: int, for_everyone: bool = False, expected_created_at=None) -> DeleteResult:
        """Delete a message; the next view does not auto-scroll."""
        self.sync.suppress_next_autoscroll()
        return await self.messages.delete(
            self.conversation_id,
            message_index,
            for_everyone=for_everyone,
            expected_created_at=expected_created_at,
        )

    async def _mark_seen(self) -> int:
        try:
            return await self.messages.mark_seen(self.conversation_id)
        except Exception as e:
            logger.warning(f"Mark-seen failed in {self.conversation_id} for {self.viewer_id}: {e}")
            return 0

    def _on_view(self, view: ConversationView) -> None:
        if not self._open:
            return
        has_unseen = any(
            item.message.sender_id == self.partner_id and self.viewer_id not in item.message.seen_by
            for item in view.messages
        )
        if has_unseen and (self._mark_seen_task is None or self._mark_seen_task.done()):
            self._mark_seen_task = asyncio.create_task(self._mark_seen())
            self._tasks.add(self._mark_seen_task)
            self._mark_seen_task.add_done_callback(self._tasks.discard)
