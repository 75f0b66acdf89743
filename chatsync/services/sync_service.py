"""
Conversation synchronization.

Folds three record subscriptions (the conversation, the partner's record and
the viewer's own record) plus a staleness poll into a stream of immutable
ConversationView snapshots. All inputs go through one event queue consumed by
a single reducer task, so derived state is only ever computed in one place.
"""
import asyncio
import contextlib
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from chatsync.config import settings
from chatsync.core.record_store import RecordStore, Unsubscribe
from chatsync.repositories.conversation_repo import ConversationRepository
from chatsync.repositories.user_repo import UserRepository
from chatsync.schemas.conversation import Conversation, ConversationView
from chatsync.schemas.user import ParticipantRecord, PresenceRecord
from chatsync.services.typing_service import is_partner_typing
from chatsync.utils.datetime_utils import now_ms

logger = logging.getLogger(__name__)

ViewListener = Callable[[ConversationView], None]

CONVERSATION = "conversation"
PARTNER = "partner"
VIEWER = "viewer"
POLL = "poll"


def render_view(
    conversation_id: str,
    viewer_id: str,
    partner_id: str,
    conversation: Optional[Conversation],
    partner: Optional[ParticipantRecord],
    viewer: Optional[ParticipantRecord],
    current_ms: Optional[int] = None,
    suppress_autoscroll: bool = False
) -> ConversationView:
    """
    Build the viewer's snapshot of a conversation.

    Args:
        conversation_id: Conversation ID
        viewer_id: Local participant
        partner_id: Other participant
        conversation: Conversation record, None when it does not exist
        partner: Partner's record, None when unknown
        viewer: Viewer's own record, None when unknown
        current_ms: Reader's clock for typing staleness
        suppress_autoscroll: Flag for the presentation layer

    Returns:
        Immutable view snapshot
    """
    if current_ms is None:
        current_ms = now_ms()

    messages = conversation.visible_to(viewer_id) if conversation else []
    partner_typing = bool(conversation) and is_partner_typing(conversation.typing.get(partner_id), current_ms)

    return ConversationView(
        conversation_id=conversation_id,
        viewer_id=viewer_id,
        partner_id=partner_id,
        exists=conversation is not None,
        messages=messages,
        partner_typing=partner_typing,
        partner_presence=partner.presence if partner else PresenceRecord(),
        is_viewer_blocked=bool(partner and viewer_id in partner.blocked),
        is_partner_blocked=bool(viewer and partner_id in viewer.blocked),
        suppress_autoscroll=suppress_autoscroll,
    )


def _same_view(a: Optional[ConversationView], b: ConversationView) -> bool:
    if a is None:
        return False
    return a.model_copy(update={"suppress_autoscroll": False}) == b.model_copy(update={"suppress_autoscroll": False})


class ConversationSynchronizer:
    """Live view of one conversation for one viewer."""

    def __init__(
        self,
        store: RecordStore,
        conversation_id: str,
        viewer_id: str,
        partner_id: str,
        poll_ms: Optional[int] = None
    ):
        """
        Initialize synchronizer (call start() to begin).

        Args:
            store: Shared record store
            conversation_id: Conversation to follow
            viewer_id: Local participant
            partner_id: Other participant
            poll_ms: Interval of the typing staleness poll
        """
        self.store = store
        self.conversations = ConversationRepository(store)
        self.users = UserRepository(store)
        self.conversation_id = conversation_id
        self.viewer_id = viewer_id
        self.partner_id = partner_id
        self.poll_ms = settings.typing_poll_ms if poll_ms is None else poll_ms

        self.conversation: Optional[Conversation] = None
        self.partner: Optional[ParticipantRecord] = None
        self.viewer: Optional[ParticipantRecord] = None
        self.latest: Optional[ConversationView] = None

        self._events: asyncio.Queue = asyncio.Queue()
        self._views: asyncio.Queue = asyncio.Queue()
        self._listeners: List[ViewListener] = []
        self._unsubscribers: List[Unsubscribe] = []
        self._reducer: Optional[asyncio.Task] = None
        self._poller: Optional[asyncio.Task] = None
        self._suppress_autoscroll = False
        self._closed = False

    async def start(self) -> None:
        """Open the three subscriptions and start the reducer and poll tasks."""
        self._reducer = asyncio.create_task(self._reduce())
        subscriptions: List[Tuple[str, str, str]] = [
            (CONVERSATION, self.conversations.collection, self.conversation_id),
            (PARTNER, self.users.collection, self.partner_id),
            (VIEWER, self.users.collection, self.viewer_id),
        ]
        for kind, collection, record_id in subscriptions:
            unsubscribe = await self.store.subscribe(
                collection,
                record_id,
                self._enqueue(kind),
                self._on_subscription_error(kind),
            )
            self._unsubscribers.append(unsubscribe)
        self._poller = asyncio.create_task(self._poll())
        logger.debug(f"Synchronizer started for {self.viewer_id} in {self.conversation_id}")

    async def close(self) -> None:
        """Tear down subscriptions and tasks; ends views()."""
        if self._closed:
            return
        self._closed = True

        for unsubscribe in self._unsubscribers:
            try:
                await unsubscribe()
            except Exception as e:
                logger.warning(f"Unsubscribe failed in {self.conversation_id}: {e}")
        self._unsubscribers.clear()

        for task in (self._poller, self._reducer):
            if task:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._poller = self._reducer = None
        self._views.put_nowait(None)
        logger.debug(f"Synchronizer closed for {self.viewer_id} in {self.conversation_id}")

    async def views(self) -> AsyncIterator[ConversationView]:
        """Yield each new snapshot until close()."""
        while True:
            view = await self._views.get()
            if view is None:
                return
            yield view

    def add_listener(self, listener: ViewListener) -> None:
        """Call listener with every emitted snapshot."""
        self._listeners.append(listener)

    def suppress_next_autoscroll(self) -> None:
        """Flag the next emitted snapshot with suppress_autoscroll."""
        self._suppress_autoscroll = True

    async def settle(self) -> None:
        """Wait until every queued event has been reduced."""
        await self._events.join()

    def _enqueue(self, kind: str) -> Callable[[Optional[Dict[str, Any]]], None]:
        def on_update(record: Optional[Dict[str, Any]]) -> None:
            if not self._closed:
                self._events.put_nowait((kind, record))
        return on_update

    def _on_subscription_error(self, kind: str) -> Callable[[Exception], None]:
        def on_error(error: Exception) -> None:
            logger.error(f"Subscription error ({kind}) in {self.conversation_id}: {error}")
        return on_error

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_ms / 1000)
            try:
                record = await self.store.get(self.conversations.collection, self.conversation_id)
            except Exception as e:
                logger.warning(f"Typing poll failed for {self.conversation_id}: {e}")
                continue
            self._events.put_nowait((POLL, record))

    async def _reduce(self) -> None:
        while True:
            kind, record = await self._events.get()
            try:
                await self._apply(kind, record)
            except Exception as e:
                logger.error(f"Failed to apply {kind} update in {self.conversation_id}: {e}", exc_info=True)
            finally:
                self._events.task_done()

    async def _apply(self, kind: str, record: Optional[Dict[str, Any]]) -> None:
        if kind == CONVERSATION:
            self.conversation = self.conversations.to_model(self.conversation_id, record)
        elif kind == POLL:
            # A poll snapshot may be older than the last push, so it never
            # replaces cached state. It only re-renders with a fresh clock and
            # drops typing when the record is gone.
            if record is None and self.conversation is not None and self.conversation.typing:
                self.conversation = self.conversation.model_copy(update={"typing": {}})
        elif kind == PARTNER:
            self.partner = self.users.to_model(self.partner_id, record)
        elif kind == VIEWER:
            # Re-fetch before deriving block state from the viewer's record.
            self.viewer = await self.users.get(self.viewer_id)

        view = render_view(
            self.conversation_id,
            self.viewer_id,
            self.partner_id,
            self.conversation,
            self.partner,
            self.viewer,
            suppress_autoscroll=self._suppress_autoscroll,
        )
        if _same_view(self.latest, view):
            return

        self._suppress_autoscroll = False
        self.latest = view
        self._views.put_nowait(view)
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception as e:
                logger.error(f"View listener failed in {self.conversation_id}: {e}", exc_info=True)
