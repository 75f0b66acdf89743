"""
WebSocket manager for real-time conversation views.
Handles Socket.IO connections, per-connection chat sessions and presence.
"""
import asyncio
import contextlib
import logging
from typing import Dict, Optional, Set, Tuple

import socketio

from chatsync.config import settings
from chatsync.core.blob_store import BlobStore, blob_store
from chatsync.core.record_store import RecordStore, record_store
from chatsync.services.chat_session import ChatSession
from chatsync.services.presence_service import PresenceRegistry, presence_registry

logger = logging.getLogger(__name__)

SessionKey = Tuple[str, str]


class ConnectionManager:
    """
    WebSocket connection manager using Socket.IO.

    Each connection identifies a participant. Joining a conversation opens a
    ChatSession whose views are pushed to that connection as
    'conversation_view' events.
    """

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        blobs: Optional[BlobStore] = None,
        presence: Optional[PresenceRegistry] = None
    ):
        """Initialize the connection manager."""
        self.store = store or record_store
        self.blobs = blobs or blob_store
        self.presence = presence or presence_registry

        cors_origins = settings.get_allowed_origins_list() or ["*"]
        self.sio = socketio.AsyncServer(
            async_mode='asgi',
            cors_allowed_origins=cors_origins,
            logger=False,
            engineio_logger=False,
        )

        # Track connections: {sid: participant_id}
        self.connections: Dict[str, str] = {}

        # Track participant sessions: {participant_id: set of sids}
        self.user_sessions: Dict[str, Set[str]] = {}

        # Open chat sessions: {(sid, conversation_id): (session, forwarding task)}
        self.chat_sessions: Dict[SessionKey, Tuple[ChatSession, asyncio.Task]] = {}

        self._setup_handlers()

    def _setup_handlers(self):
        """Setup Socket.IO event handlers."""

        @self.sio.event
        async def connect(sid, environ, auth):
            """
            Handle client connection.

            Expected auth: {'participant_id': '...'}
            """
            participant_id = auth.get('participant_id') if auth else None
            if not participant_id:
                logger.warning(f"Connection rejected - no participant id: {sid}")
                return False

            self.connections[sid] = participant_id
            self.user_sessions.setdefault(participant_id, set()).add(sid)
            self.presence.start(self.store, participant_id)
            logger.info(f"Client connected: {sid} (participant: {participant_id})")
            return True

        @self.sio.event
        async def disconnect(sid, *args):
            """Handle client disconnection."""
            participant_id = self.connections.pop(sid, None)
            for key in [key for key in self.chat_sessions if key[0] == sid]:
                await self.close_session(key)

            if participant_id:
                sids = self.user_sessions.get(participant_id, set())
                sids.discard(sid)
                if not sids:
                    self.user_sessions.pop(participant_id, None)
                    await self.presence.stop(participant_id)
                logger.info(f"Client disconnected: {sid} (participant: {participant_id})")

        @self.sio.event
        async def join_conversation(sid, data):
            """
            Open a conversation and start streaming its views.

            Expected data: {'conversation_id': '...', 'partner_id': '...'}
            """
            participant_id = self.connections.get(sid)
            if not participant_id:
                await self.sio.emit('error', {'message': 'Unauthorized'}, to=sid)
                return

            try:
                await self.open_session(sid, participant_id, data['conversation_id'], data['partner_id'])
            except Exception as e:
                logger.error(f"Error joining conversation: {e}", exc_info=True)
                await self.sio.emit('error', {'message': 'Failed to join conversation'}, to=sid)

        @self.sio.event
        async def leave_conversation(sid, data):
            """
            Close a conversation opened by this connection.

            Expected data: {'conversation_id': '...'}
            """
            try:
                await self.close_session((sid, data['conversation_id']))
                await self.sio.emit('left_conversation', {
                    'conversation_id': data['conversation_id']
                }, to=sid)
            except Exception as e:
                logger.error(f"Error leaving conversation: {e}")

        @self.sio.event
        async def typing_input(sid, data):
            """
            Composer text changed.

            Expected data: {'conversation_id': '...', 'text': '...'}
            """
            session = self._session(sid, data)
            if session:
                try:
                    await session.note_input(data.get('text'))
                except Exception as e:
                    logger.warning(f"Typing input rejected for {sid}: {e}")

        @self.sio.event
        async def typing_stop(sid, data):
            """
            Composer was left or submitted.

            Expected data: {'conversation_id': '...'}
            """
            session = self._session(sid, data)
            if session:
                session.typing.stop_now()

        @self.sio.event
        async def app_foreground(sid, data=None):
            """Client came back to the foreground."""
            session = self.presence.get(self.connections.get(sid, ""))
            if session:
                session.foreground()

        @self.sio.event
        async def app_background(sid, data=None):
            """Client moved to the background."""
            session = self.presence.get(self.connections.get(sid, ""))
            if session:
                session.background()

    def _session(self, sid: str, data) -> Optional[ChatSession]:
        conversation_id = data.get('conversation_id') if isinstance(data, dict) else None
        entry = self.chat_sessions.get((sid, conversation_id))
        return entry[0] if entry else None

    async def open_session(self, sid: str, participant_id: str, conversation_id: str, partner_id: str) -> ChatSession:
        """Open a chat session for a connection and forward its views."""
        key = (sid, conversation_id)
        if key in self.chat_sessions:
            return self.chat_sessions[key][0]

        session = ChatSession(self.store, self.blobs, conversation_id, participant_id, partner_id)
        await session.open()
        task = asyncio.create_task(self._forward_views(sid, session))
        self.chat_sessions[key] = (session, task)
        logger.info(f"{participant_id} joined conversation {conversation_id} ({sid})")
        return session

    async def close_session(self, key: SessionKey) -> None:
        """Close a chat session and stop forwarding its views."""
        entry = self.chat_sessions.pop(key, None)
        if entry is None:
            return
        session, task = entry
        await session.close()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def close_all(self) -> None:
        """Close every open chat session."""
        for key in list(self.chat_sessions):
            await self.close_session(key)

    async def _forward_views(self, sid: str, session: ChatSession) -> None:
        async for view in session.views():
            await self.sio.emit('conversation_view', view.to_payload(), to=sid)

    def get_asgi_app(self, fastapi_app):
        """
        Get the ASGI app for Socket.IO wrapping FastAPI.

        Socket.IO handles /socket.io/* and passes everything else to FastAPI.

        Args:
            fastapi_app: FastAPI application instance

        Returns:
            Socket.IO ASGI app with FastAPI wrapped inside
        """
        return socketio.ASGIApp(self.sio, fastapi_app)


# Global connection manager instance
connection_manager = ConnectionManager()
