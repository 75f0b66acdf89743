"""
Presence publishing.

Each participant asserts their own online state on their own record. A live
session re-asserts online on a fixed heartbeat so readers can tell a quiet
client from a dead one by the age of lastSeen.
"""
import asyncio
import contextlib
import logging
from typing import Dict, Optional, Set

from chatsync.config import settings
from chatsync.core.exceptions import StoreWriteFailure
from chatsync.core.record_store import RecordStore
from chatsync.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)


class PresenceSession:
    """Presence publisher for one participant."""

    def __init__(self, store: RecordStore, heartbeat_seconds: Optional[float] = None):
        """
        Initialize presence session.

        Args:
            store: Shared record store
            heartbeat_seconds: Interval between online re-assertions
        """
        self.users = UserRepository(store)
        self.heartbeat_seconds = (
            settings.presence_heartbeat_seconds if heartbeat_seconds is None else heartbeat_seconds
        )
        self.participant_id: Optional[str] = None
        self._heartbeat: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._heartbeat is not None and not self._heartbeat.done()

    def start(self, participant_id: str) -> None:
        """Assert online now and start the heartbeat."""
        if self.is_running:
            return
        self.participant_id = participant_id
        self._publish(True)
        self._heartbeat = asyncio.create_task(self._run_heartbeat())
        logger.info(f"Presence started for {participant_id}")

    def foreground(self) -> None:
        """Client returned to the foreground."""
        if self.participant_id:
            self._publish(True)

    def background(self) -> None:
        """Client moved to the background."""
        if self.participant_id:
            self._publish(False)

    async def stop(self) -> None:
        """Cancel the heartbeat and assert offline."""
        if self._heartbeat:
            self._heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._heartbeat
            self._heartbeat = None

        if self.participant_id:
            self._publish(False)
            await self.wait_idle()
            logger.info(f"Presence stopped for {self.participant_id}")

    async def wait_idle(self) -> None:
        """Wait until all issued presence writes have finished."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    def _publish(self, is_online: bool) -> None:
        task = asyncio.create_task(self._write(self.participant_id, is_online))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, participant_id: str, is_online: bool) -> None:
        try:
            await self.users.set_presence(participant_id, is_online)
        except Exception as e:
            logger.warning(f"{StoreWriteFailure.__name__}: presence={is_online} for {participant_id}: {e}")

    async def _run_heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_seconds)
            await self._write(self.participant_id, True)


class PresenceRegistry:
    """Live presence sessions of this process, stopped together on shutdown."""

    def __init__(self):
        self.sessions: Dict[str, PresenceSession] = {}

    def start(self, store: RecordStore, participant_id: str) -> PresenceSession:
        """Start (or reuse) the participant's session."""
        session = self.sessions.get(participant_id)
        if session is None:
            session = PresenceSession(store)
            self.sessions[participant_id] = session
        session.start(participant_id)
        return session

    def get(self, participant_id: str) -> Optional[PresenceSession]:
        return self.sessions.get(participant_id)

    async def stop(self, participant_id: str) -> None:
        session = self.sessions.pop(participant_id, None)
        if session:
            await session.stop()

    async def stop_all(self) -> None:
        """Best-effort offline assertion for every live session."""
        sessions = list(self.sessions.values())
        self.sessions.clear()
        await asyncio.gather(*[session.stop() for session in sessions])


# Global presence registry
presence_registry = PresenceRegistry()
