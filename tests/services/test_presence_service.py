"""
Unit tests for presence publishing.
"""
import asyncio

import pytest

from chatsync.config import settings
from chatsync.services.presence_service import PresenceRegistry, PresenceSession


@pytest.mark.asyncio
class TestPresenceSession:
    """Test cases for PresenceSession."""

    async def _presence(self, store, participant_id):
        record = await store.get(settings.users_collection, participant_id)
        return record["isOnline"], record["lastSeen"]

    async def test_start_asserts_online(self, store, participants):
        """Test that start() immediately asserts online."""
        user_a, _ = participants
        session = PresenceSession(store, heartbeat_seconds=60)

        session.start(user_a)
        await session.wait_idle()

        is_online, last_seen = await self._presence(store, user_a)
        assert is_online is True
        assert last_seen is not None
        await session.stop()

    async def test_stop_asserts_offline(self, store, participants):
        """Test that stop() cancels the heartbeat and asserts offline."""
        user_a, _ = participants
        session = PresenceSession(store, heartbeat_seconds=60)
        session.start(user_a)

        await session.stop()

        assert session.is_running is False
        is_online, _ = await self._presence(store, user_a)
        assert is_online is False

    async def test_heartbeat_reasserts_online(self, store, participants, mocker):
        """Test that the heartbeat keeps writing online."""
        user_a, _ = participants
        session = PresenceSession(store, heartbeat_seconds=0.01)
        spy = mocker.spy(session.users, "set_presence")

        session.start(user_a)
        await asyncio.sleep(0.05)
        await session.stop()

        online_writes = [c for c in spy.call_args_list if c.args == (user_a, True)]
        assert len(online_writes) >= 2

    async def test_foreground_and_background(self, store, participants):
        """Test lifecycle hooks assert online and offline."""
        user_a, _ = participants
        session = PresenceSession(store, heartbeat_seconds=60)
        session.start(user_a)

        session.background()
        await session.wait_idle()
        assert (await self._presence(store, user_a))[0] is False

        session.foreground()
        await session.wait_idle()
        assert (await self._presence(store, user_a))[0] is True
        await session.stop()

    async def test_write_failure_is_not_raised(self, store):
        """Test that a missing participant record only logs."""
        session = PresenceSession(store, heartbeat_seconds=60)
        session.start("ghost")
        await session.wait_idle()
        await session.stop()

        assert await store.get(settings.users_collection, "ghost") is None


@pytest.mark.asyncio
class TestPresenceRegistry:
    """Test cases for PresenceRegistry."""

    async def test_stop_all_marks_everyone_offline(self, store, participants):
        """Test shutdown asserts offline for all live sessions."""
        user_a, user_b = participants
        registry = PresenceRegistry()
        first = registry.start(store, user_a)
        registry.start(store, user_b)
        assert registry.start(store, user_a) is first

        await registry.stop_all()

        assert registry.sessions == {}
        for participant_id in participants:
            record = await store.get(settings.users_collection, participant_id)
            assert record["isOnline"] is False
