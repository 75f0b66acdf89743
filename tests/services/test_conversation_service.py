"""
Unit tests for ConversationService and UserService.
Tests conversation bootstrap, summary listing and blocking.
"""
from datetime import datetime, timezone

import pytest

from chatsync.config import settings
from chatsync.core.exceptions import RecordMissing
from chatsync.schemas.conversation import ConversationSummary
from chatsync.schemas.message import NO_MESSAGES_PREVIEW
from chatsync.services.conversation_service import ConversationService
from chatsync.services.user_service import UserService


class TestConversationService:
    """Test conversation service operations."""

    async def test_create_conversation(self, store, participants, read_conversation, read_summary):
        """Test that creation writes the record and both summaries."""
        user_a, user_b = participants
        service = ConversationService(store)

        conversation_id = await service.create_conversation(user_a, user_b)

        conversation = await read_conversation(conversation_id)
        assert conversation.messages == []
        assert conversation.created_at is not None
        owner_summary = await read_summary(user_a, conversation_id)
        partner_summary = await read_summary(user_b, conversation_id)
        assert owner_summary.receiver_id == user_b
        assert partner_summary.receiver_id == user_a
        assert owner_summary.last_message_preview == NO_MESSAGES_PREVIEW

    async def test_create_returns_existing(self, store, participants):
        """Test that a second create with the same partner reuses the conversation."""
        user_a, user_b = participants
        service = ConversationService(store)

        first = await service.create_conversation(user_a, user_b)
        second = await service.create_conversation(user_a, user_b)

        assert first == second
        assert len(await service.list_summaries(user_a)) == 1

    async def test_create_with_self_rejected(self, store, participants):
        """Test that a participant cannot talk to themselves."""
        user_a, _ = participants
        with pytest.raises(ValueError):
            await ConversationService(store).create_conversation(user_a, user_a)

    async def test_list_summaries_newest_first(self, store, participants):
        """Test ordering by updatedAt, entries without one last."""
        user_a, _ = participants
        entries = [
            ConversationSummary(conversation_id="old", updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc)),
            ConversationSummary(conversation_id="none"),
            ConversationSummary(conversation_id="new", updated_at=datetime(2025, 1, 1, tzinfo=timezone.utc)),
        ]
        await store.set(settings.summaries_collection, user_a, {"chats": [e.to_record() for e in entries]})

        summaries = await ConversationService(store).list_summaries(user_a)

        assert [s.conversation_id for s in summaries] == ["new", "old", "none"]

    async def test_legacy_summary_fields(self, store, participants):
        """Test that older summary records are read."""
        user_a, _ = participants
        await store.set(settings.summaries_collection, user_a, {"chats": [
            {"chatId": "c9", "receiverId": "x", "lastMessage": "hey", "isSeen": False, "updatedAt": 1700000000000},
        ]})

        summary = (await ConversationService(store).list_summaries(user_a))[0]

        assert summary.conversation_id == "c9"
        assert summary.last_message_preview == "hey"
        assert summary.is_seen_by_owner is False
        assert summary.updated_at == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)

    async def test_list_without_record(self, store):
        """Test listing for a participant with no summaries."""
        assert await ConversationService(store).list_summaries("nobody") == []


class TestUserService:
    """Test user service operations."""

    async def test_toggle_block(self, store, participants):
        """Test blocking then unblocking a partner."""
        user_a, user_b = participants
        service = UserService(store)

        assert await service.toggle_block(user_a, user_b) is True
        assert (await store.get(settings.users_collection, user_a))["blocked"] == [user_b]

        assert await service.toggle_block(user_a, user_b) is False
        assert (await store.get(settings.users_collection, user_a))["blocked"] == []

    async def test_toggle_block_unknown_viewer(self, store):
        """Test that an unknown viewer raises."""
        with pytest.raises(RecordMissing):
            await UserService(store).toggle_block("ghost", "user_b")

    async def test_register_and_presence(self, store):
        """Test registering a participant and reading their presence."""
        service = UserService(store)

        record = await service.register("user_c", "carol")
        presence = await service.get_presence("user_c")

        assert record.username == "carol"
        assert presence.is_online is False
        assert await service.get_presence("ghost") is None
