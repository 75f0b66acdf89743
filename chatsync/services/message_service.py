"""
Message service containing the message lifecycle: send, mark-seen, delete.

Each operation performs one primary write to the conversation record and then
best-effort bookkeeping (summaries, blob cleanup) whose failures are logged
and never undo the primary write.
"""
import logging
from datetime import datetime
from typing import Any, Optional

from chatsync.core.blob_store import BlobStore
from chatsync.core.exceptions import (
    ConversationMissing,
    InvalidSendState,
    MessageNotFound,
    NotAuthorized,
    RecordMissing,
    SendFailure,
    UploadFailure,
)
from chatsync.core.record_store import RecordStore
from chatsync.repositories.conversation_repo import ConversationRepository
from chatsync.repositories.user_repo import UserRepository
from chatsync.schemas.message import DeleteResult, Draft, DraftAttachment, Message
from chatsync.services.attachment_service import AttachmentService, restore_draft_attachment
from chatsync.services.summary_service import SummaryProjector
from chatsync.services.typing_service import TypingSignaler
from chatsync.utils.datetime_utils import to_epoch_ms, utc_now

logger = logging.getLogger(__name__)


class MessageService:
    """Service for message operations of one participant in one pairing."""

    def __init__(
        self,
        store: RecordStore,
        blobs: BlobStore,
        sender_id: str,
        partner_id: str,
        typing: Optional[TypingSignaler] = None
    ):
        """
        Initialize message service.

        Args:
            store: Shared record store
            blobs: Blob store for attachments
            sender_id: Local participant
            partner_id: Other participant
            typing: Typing signaler to stop on send; a one-off signaler is
                used when none is given
        """
        self.store = store
        self.conversations = ConversationRepository(store)
        self.users = UserRepository(store)
        self.attachments = AttachmentService(blobs)
        self.summaries = SummaryProjector(store)
        self.sender_id = sender_id
        self.partner_id = partner_id
        self.typing = typing

    def _restore_draft(self, text: Optional[str], attachment: Optional[DraftAttachment]) -> Draft:
        return Draft(
            text=text,
            attachment=restore_draft_attachment(attachment) if attachment else None,
        )

    async def send(
        self,
        conversation_id: str,
        text: Optional[str] = None,
        attachment: Optional[DraftAttachment] = None
    ) -> Message:
        """
        Send a message with optional attachment.

        Args:
            conversation_id: Target conversation
            text: Message text
            attachment: File to upload before committing

        Returns:
            The committed message

        Raises:
            InvalidSendState: No content, conversation/participants unknown, or
                either participant has blocked the other
            UploadFailure: Attachment upload failed; nothing was committed
            ConversationMissing: Conversation record does not exist
            SendFailure: Commit failed
        """
        if not text and attachment is None:
            raise InvalidSendState("Message must have text or an attachment")
        if not conversation_id or not self.sender_id or not self.partner_id:
            raise InvalidSendState("Conversation and both participants are required")

        typing = self.typing or TypingSignaler(self.store, conversation_id, self.sender_id)
        clear_typing = typing.stop_now()
        try:
            return await self._send(conversation_id, text, attachment)
        finally:
            await clear_typing

    async def _send(
        self,
        conversation_id: str,
        text: Optional[str],
        attachment: Optional[DraftAttachment]
    ) -> Message:
        if await self.is_blocked():
            raise InvalidSendState("Conversation is blocked")

        uploaded = None
        if attachment is not None:
            try:
                uploaded = await self.attachments.upload(attachment)
            except Exception as e:
                logger.error(f"Attachment upload failed in {conversation_id}: {e}")
                raise UploadFailure(
                    f"Failed to upload {attachment.name}",
                    draft=self._restore_draft(text, attachment),
                ) from e

        message = Message(
            sender_id=self.sender_id,
            text=text or None,
            attachment=uploaded,
            created_at=utc_now(),
        )

        try:
            if not await self.conversations.exists(conversation_id):
                raise RecordMissing(self.conversations.collection, conversation_id)
            await self.conversations.append_message(conversation_id, message)
        except RecordMissing as e:
            await self._discard_upload(uploaded)
            raise ConversationMissing(
                f"Conversation {conversation_id} not found",
                draft=self._restore_draft(text, attachment),
            ) from e
        except Exception as e:
            logger.error(f"Failed to commit message in {conversation_id}: {e}")
            await self._discard_upload(uploaded)
            raise SendFailure(
                f"Failed to send message: {e}",
                draft=self._restore_draft(text, attachment),
            ) from e

        logger.info(f"Message sent in {conversation_id} by {self.sender_id}")
        await self.summaries.apply_send(conversation_id, message, self.sender_id, self.partner_id)
        return message

    async def is_blocked(self) -> bool:
        """True when either participant has the other in their block list."""
        sender = await self.users.get(self.sender_id)
        partner = await self.users.get(self.partner_id)
        return bool(
            (sender and self.partner_id in sender.blocked)
            or (partner and self.sender_id in partner.blocked)
        )

    async def _discard_upload(self, uploaded) -> None:
        if uploaded is not None:
            await self.attachments.delete(uploaded)

    async def mark_seen(self, conversation_id: str) -> int:
        """
        Mark every partner message as seen by the local participant.

        One read and at most one write of the whole message list.

        Args:
            conversation_id: Conversation ID

        Returns:
            Number of messages newly marked

        Raises:
            ConversationMissing: Conversation record does not exist
        """
        conversation = await self.conversations.get(conversation_id)
        if conversation is None:
            raise ConversationMissing(f"Conversation {conversation_id} not found")

        marked = 0
        for message in conversation.messages:
            if message.sender_id != self.sender_id and self.sender_id not in message.seen_by:
                message.seen_by.append(self.sender_id)
                marked += 1

        if marked:
            await self.conversations.replace_messages(conversation_id, conversation.messages)
            logger.debug(f"Marked {marked} messages seen in {conversation_id} for {self.sender_id}")

        await self.summaries.mark_seen_by_owner(self.sender_id, conversation_id)
        return marked

    async def delete(
        self,
        conversation_id: str,
        message_index: int,
        for_everyone: bool = False,
        expected_created_at: Optional[Any] = None
    ) -> DeleteResult:
        """
        Delete a message for everyone or only for the local participant.

        Args:
            conversation_id: Conversation ID
            message_index: Position of the message in the sequence
            for_everyone: Remove the message for both participants
            expected_created_at: Creation time the caller saw at that position

        Returns:
            DeleteResult

        Raises:
            ConversationMissing: Conversation record does not exist
            MessageNotFound: No message at that position (or a different one)
            NotAuthorized: Delete-for-everyone on the partner's message
        """
        conversation = await self.conversations.get(conversation_id)
        if conversation is None:
            raise ConversationMissing(f"Conversation {conversation_id} not found")

        messages = conversation.messages
        if message_index < 0 or message_index >= len(messages):
            raise MessageNotFound(f"No message at index {message_index} in {conversation_id}")

        message = messages[message_index]
        if expected_created_at is not None and not self._same_instant(expected_created_at, message.created_at):
            raise MessageNotFound(f"Message at index {message_index} in {conversation_id} has changed")

        if for_everyone and message.sender_id != self.sender_id:
            raise NotAuthorized("Only the sender can delete a message for everyone")

        blob_deleted = None
        if for_everyone:
            del messages[message_index]
            await self.conversations.replace_messages(conversation_id, messages)
            if message.attachment:
                blob_deleted = await self.attachments.delete(message.attachment)
            changed = True
        elif self.sender_id in message.deleted_for:
            changed = False
        else:
            message.deleted_for.append(self.sender_id)
            await self.conversations.replace_messages(conversation_id, messages)
            changed = True

        if changed:
            logger.info(
                f"Message {message_index} deleted in {conversation_id} by {self.sender_id} "
                f"(for_everyone={for_everyone})"
            )
            await self.summaries.apply_messages(conversation_id, messages, [self.sender_id, self.partner_id])

        return DeleteResult(
            conversation_id=conversation_id,
            message_index=message_index,
            for_everyone=for_everyone,
            changed=changed,
            blob_deleted=blob_deleted,
        )

    @staticmethod
    def _same_instant(expected: Any, actual: datetime) -> bool:
        expected_ms = to_epoch_ms(expected)
        return expected_ms is not None and expected_ms == to_epoch_ms(actual)
