"""
Unit tests for MessageService.
Tests send, mark-seen and delete against in-memory stores.
"""
import io

import pytest
from PIL import Image

from chatsync.config import settings
from chatsync.core.blob_store import BlobStoreError
from chatsync.core.exceptions import (
    ConversationMissing,
    InvalidSendState,
    MessageNotFound,
    NotAuthorized,
    UploadFailure,
)
from chatsync.schemas.message import NO_MESSAGES_PREVIEW, Attachment, DraftAttachment, Message
from chatsync.services.message_service import MessageService
from chatsync.services.typing_service import TypingSignaler


def png_bytes(size=(64, 48)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", size, (255, 0, 0, 128)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.mark.asyncio
class TestSendMessage:
    """Test cases for MessageService.send."""

    async def test_send_text_message(self, store, blobs, participants, test_conversation, read_conversation, read_summary):
        """Test sending a text message appends it and updates both summaries."""
        user_a, user_b = participants
        service = MessageService(store, blobs, user_a, user_b)

        message = await service.send(test_conversation, text="Hello")

        conversation = await read_conversation()
        assert len(conversation.messages) == 1
        stored = conversation.messages[0]
        assert stored.sender_id == user_a
        assert stored.text == "Hello"
        assert stored.seen_by == []
        assert stored.deleted_for == []
        assert message.text == "Hello"

        sender_summary = await read_summary(user_a)
        recipient_summary = await read_summary(user_b)
        assert sender_summary.last_message_preview == "Hello"
        assert sender_summary.is_seen_by_owner is True
        assert recipient_summary.last_message_preview == "Hello"
        assert recipient_summary.is_seen_by_owner is False

    async def test_send_attachment_only(self, store, blobs, participants, test_conversation, read_conversation, read_summary):
        """Test that an attachment is uploaded first and previewed by name."""
        user_a, user_b = participants
        service = MessageService(store, blobs, user_a, user_b)
        draft = DraftAttachment(name="report.pdf", mime="application/pdf", data=b"%PDF-1.4")

        await service.send(test_conversation, attachment=draft)

        stored = (await read_conversation()).messages[0]
        assert stored.text is None
        assert stored.attachment.name == "report.pdf"
        assert stored.attachment.path.startswith("files/")
        assert stored.attachment.path.endswith("_report.pdf")
        assert blobs.blobs[stored.attachment.path] == b"%PDF-1.4"
        assert (await read_summary(user_b)).last_message_preview == "report.pdf"

    async def test_image_attachment_goes_under_images(self, store, blobs, participants, test_conversation, read_conversation):
        """Test image uploads use the images/ folder."""
        user_a, user_b = participants
        service = MessageService(store, blobs, user_a, user_b)

        await service.send(test_conversation, text="pic", attachment=DraftAttachment(name="a.png", mime="image/png", data=png_bytes()))

        assert (await read_conversation()).messages[0].attachment.path.startswith("images/")

    @pytest.mark.parametrize("text", [None, ""])
    async def test_send_without_content_rejected(self, store, blobs, participants, test_conversation, text):
        """Test that a send with no text and no attachment is rejected."""
        user_a, user_b = participants
        service = MessageService(store, blobs, user_a, user_b)

        with pytest.raises(InvalidSendState):
            await service.send(test_conversation, text=text)

    async def test_send_without_partner_rejected(self, store, blobs, participants, test_conversation):
        """Test that an unknown partner is rejected."""
        user_a, _ = participants
        service = MessageService(store, blobs, user_a, "")

        with pytest.raises(InvalidSendState):
            await service.send(test_conversation, text="Hello")

    async def test_failed_upload_restores_draft(self, store, blobs, participants, test_conversation, read_conversation, mocker):
        """Test that a failed upload commits nothing and hands back the draft."""
        user_a, user_b = participants
        mocker.patch.object(blobs, "upload", side_effect=BlobStoreError("bucket unavailable"))
        service = MessageService(store, blobs, user_a, user_b)
        draft = DraftAttachment(name="photo.png", mime="image/png", data=png_bytes())

        with pytest.raises(UploadFailure) as exc_info:
            await service.send(test_conversation, text="look", attachment=draft)

        restored = exc_info.value.draft
        assert restored.text == "look"
        assert restored.attachment.name == "photo.png"
        assert restored.attachment.data == draft.data
        assert restored.attachment.preview is not None
        assert Image.open(io.BytesIO(restored.attachment.preview)).format == "JPEG"
        assert (await read_conversation()).messages == []

    async def test_missing_conversation_discards_upload(self, store, blobs, participants):
        """Test that a missing conversation raises and removes the uploaded blob."""
        user_a, user_b = participants
        service = MessageService(store, blobs, user_a, user_b)
        draft = DraftAttachment(name="notes.txt", mime="text/plain", data=b"hi")

        with pytest.raises(ConversationMissing) as exc_info:
            await service.send("missing", text="hello", attachment=draft)

        assert exc_info.value.draft.text == "hello"
        assert blobs.blobs == {}

    async def test_send_clears_typing(self, store, blobs, participants, test_conversation, read_conversation):
        """Test that sending clears the sender's typing entry."""
        user_a, user_b = participants
        typing = TypingSignaler(store, test_conversation, user_a)
        await typing.set_typing(True)
        assert user_a in (await read_conversation()).typing

        service = MessageService(store, blobs, user_a, user_b, typing=typing)
        await service.send(test_conversation, text="done typing")
        await typing.flush()

        assert user_a not in (await read_conversation()).typing

    async def test_send_clears_typing_without_signaler(self, store, blobs, participants, test_conversation, read_conversation):
        """Test that a service built without a signaler still clears typing before returning."""
        user_a, user_b = participants
        await TypingSignaler(store, test_conversation, user_a).set_typing(True)

        await MessageService(store, blobs, user_a, user_b).send(test_conversation, text="hi")

        assert user_a not in (await read_conversation()).typing

    @pytest.mark.parametrize("blocker", ["sender", "partner"])
    async def test_send_refused_while_blocked(self, store, blobs, participants, test_conversation, read_conversation, blocker):
        """Test that either side's block refuses the send and commits nothing."""
        user_a, user_b = participants
        if blocker == "sender":
            await store.update(settings.users_collection, user_a, {"blocked": [user_b]})
        else:
            await store.update(settings.users_collection, user_b, {"blocked": [user_a]})

        with pytest.raises(InvalidSendState):
            await MessageService(store, blobs, user_a, user_b).send(test_conversation, text="hi")

        assert (await read_conversation()).messages == []


@pytest.mark.asyncio
class TestMarkSeen:
    """Test cases for MessageService.mark_seen."""

    async def test_marks_partner_messages_in_one_write(self, store, blobs, participants, add_messages, test_conversation, read_conversation, mocker):
        """Test that all unseen partner messages are marked in a single update."""
        user_a, user_b = participants
        await add_messages(
            Message(sender_id=user_a, text="1"),
            Message(sender_id=user_a, text="2"),
            Message(sender_id=user_a, text="3"),
            Message(sender_id=user_b, text="mine"),
        )
        update_spy = mocker.spy(store, "update")
        service = MessageService(store, blobs, user_b, user_a)

        marked = await service.mark_seen(test_conversation)

        assert marked == 3
        conversation_updates = [c for c in update_spy.call_args_list if c.args[0] == "chats"]
        assert len(conversation_updates) == 1
        messages = (await read_conversation()).messages
        assert all(user_b in m.seen_by for m in messages[:3])
        assert messages[3].seen_by == []

    async def test_no_write_when_nothing_to_mark(self, store, blobs, participants, add_messages, test_conversation, mocker):
        """Test that a second mark-seen does not write the conversation."""
        user_a, user_b = participants
        await add_messages(Message(sender_id=user_a, text="1"))
        service = MessageService(store, blobs, user_b, user_a)
        await service.mark_seen(test_conversation)

        update_spy = mocker.spy(store, "update")
        marked = await service.mark_seen(test_conversation)

        assert marked == 0
        assert not [c for c in update_spy.call_args_list if c.args[0] == "chats"]

    async def test_marks_own_summary_seen(self, store, blobs, participants, test_conversation, read_summary):
        """Test that the viewer's summary is flagged seen."""
        user_a, user_b = participants
        await MessageService(store, blobs, user_a, user_b).send(test_conversation, text="hey")
        assert (await read_summary(user_b)).is_seen_by_owner is False

        await MessageService(store, blobs, user_b, user_a).mark_seen(test_conversation)

        assert (await read_summary(user_b)).is_seen_by_owner is True


@pytest.mark.asyncio
class TestDeleteMessage:
    """Test cases for MessageService.delete."""

    async def test_delete_for_everyone_removes_message_and_blob(self, store, blobs, participants, add_messages, test_conversation, read_conversation, mocker):
        """Test sender delete-for-everyone splices the message and deletes its blob once."""
        user_a, user_b = participants
        blobs.blobs["images/1_a.png"] = b"img"
        attachment = Attachment(url=blobs.get_url("images/1_a.png"), name="a.png", mime="image/png", path="images/1_a.png")
        await add_messages(
            Message(sender_id=user_a, text="keep"),
            Message(sender_id=user_a, attachment=attachment),
        )
        delete_spy = mocker.spy(blobs, "delete")
        service = MessageService(store, blobs, user_a, user_b)

        result = await service.delete(test_conversation, 1, for_everyone=True)

        assert result.changed is True
        assert result.blob_deleted is True
        assert result.suppress_autoscroll is True
        delete_spy.assert_called_once_with("images/1_a.png")
        conversation = await read_conversation()
        assert [m.text for m in conversation.messages] == ["keep"]
        assert len(conversation.visible_to(user_a)) == 1
        assert len(conversation.visible_to(user_b)) == 1

    async def test_blob_path_resolved_from_url(self, store, blobs, participants, add_messages, test_conversation, mocker):
        """Test that legacy attachments without a path are cleaned up via their URL."""
        user_a, user_b = participants
        blobs.blobs["files/9_doc.txt"] = b"x"
        await add_messages(Message(sender_id=user_a, attachment=Attachment(url=blobs.get_url("files/9_doc.txt"), name="doc.txt")))
        delete_spy = mocker.spy(blobs, "delete")

        await MessageService(store, blobs, user_a, user_b).delete(test_conversation, 0, for_everyone=True)

        delete_spy.assert_called_once_with("files/9_doc.txt")

    async def test_blob_failure_is_not_fatal(self, store, blobs, participants, add_messages, test_conversation, read_conversation):
        """Test that a failing blob delete still removes the message."""
        user_a, user_b = participants
        await add_messages(Message(sender_id=user_a, attachment=Attachment(url="memory://blobs/files/gone", name="gone", path="files/gone")))

        result = await MessageService(store, blobs, user_a, user_b).delete(test_conversation, 0, for_everyone=True)

        assert result.blob_deleted is False
        assert (await read_conversation()).messages == []

    async def test_delete_for_everyone_by_non_sender_rejected(self, store, blobs, participants, add_messages, test_conversation, read_conversation):
        """Test that only the sender can delete for everyone."""
        user_a, user_b = participants
        await add_messages(Message(sender_id=user_a, text="mine"))
        service = MessageService(store, blobs, user_b, user_a)

        with pytest.raises(NotAuthorized):
            await service.delete(test_conversation, 0, for_everyone=True)

        conversation = await read_conversation()
        assert len(conversation.messages) == 1
        assert conversation.messages[0].deleted_for == []

    async def test_delete_for_me_is_idempotent(self, store, blobs, participants, add_messages, test_conversation, read_conversation):
        """Test repeated delete-for-me leaves a single entry and writes once."""
        user_a, user_b = participants
        await add_messages(Message(sender_id=user_b, text="hello"))
        service = MessageService(store, blobs, user_a, user_b)

        first = await service.delete(test_conversation, 0)
        second = await service.delete(test_conversation, 0)

        assert first.changed is True
        assert second.changed is False
        assert (await read_conversation()).messages[0].deleted_for == [user_a]

    async def test_visible_counts_after_deletes(self, store, blobs, participants, add_messages, test_conversation, read_conversation):
        """Test visible counts: n - k for the deleting viewer, n for the partner."""
        user_a, user_b = participants
        await add_messages(*[Message(sender_id=user_b, text=str(n)) for n in range(5)])
        service = MessageService(store, blobs, user_a, user_b)

        await service.delete(test_conversation, 1)
        await service.delete(test_conversation, 3)

        conversation = await read_conversation()
        assert len(conversation.visible_to(user_a)) == 3
        assert len(conversation.visible_to(user_b)) == 5
        assert [v.index for v in conversation.visible_to(user_a)] == [0, 2, 4]

    async def test_summaries_follow_delete(self, store, blobs, participants, add_messages, test_conversation, read_summary):
        """Test that each participant's preview is recomputed after a delete."""
        user_a, user_b = participants
        await add_messages(Message(sender_id=user_b, text="first"), Message(sender_id=user_b, text="second"))
        service = MessageService(store, blobs, user_a, user_b)

        await service.delete(test_conversation, 1)
        assert (await read_summary(user_a)).last_message_preview == "first"
        assert (await read_summary(user_b)).last_message_preview == "second"

        await service.delete(test_conversation, 0)
        assert (await read_summary(user_a)).last_message_preview == NO_MESSAGES_PREVIEW

    async def test_index_out_of_range(self, store, blobs, participants, test_conversation):
        """Test deleting a position that does not exist."""
        user_a, user_b = participants
        with pytest.raises(MessageNotFound):
            await MessageService(store, blobs, user_a, user_b).delete(test_conversation, 0)

    async def test_expected_created_at_mismatch(self, store, blobs, participants, add_messages, test_conversation):
        """Test that a shifted sequence position is detected."""
        user_a, user_b = participants
        await add_messages(Message(sender_id=user_a, text="x", created_at=1700000000000))
        service = MessageService(store, blobs, user_a, user_b)

        with pytest.raises(MessageNotFound):
            await service.delete(test_conversation, 0, expected_created_at=1700000000001)

        result = await service.delete(test_conversation, 0, expected_created_at="2023-11-14T22:13:20Z")
        assert result.changed is True

    async def test_missing_conversation(self, store, blobs, participants):
        """Test deleting from a conversation that does not exist."""
        user_a, user_b = participants
        with pytest.raises(ConversationMissing):
            await MessageService(store, blobs, user_a, user_b).delete("missing", 0)
