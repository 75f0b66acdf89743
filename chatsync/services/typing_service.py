"""
Typing signaling and staleness inference.

A participant publishes "typing" as a single timestamp entry in the
conversation's typing map and clears it by deleting the entry. Readers never
trust an entry forever: it counts only while it is recent, which covers a
writer that crashed before clearing it.
"""
import asyncio
import contextlib
import logging
from typing import Any, Optional, Set

from chatsync.config import settings
from chatsync.core.exceptions import StoreWriteFailure
from chatsync.core.record_store import RecordStore
from chatsync.repositories.conversation_repo import ConversationRepository
from chatsync.utils.datetime_utils import to_epoch_ms

logger = logging.getLogger(__name__)


def is_partner_typing(
    timestamp: Any,
    now_ms: int,
    stale_ms: Optional[int] = None,
    skew_ms: Optional[int] = None
) -> bool:
    """
    Decide whether a typing timestamp is live.

    Args:
        timestamp: Partner's typing entry in any stored timestamp shape
        now_ms: Reader's current time in epoch milliseconds
        stale_ms: Age at which the entry expires (default 4000)
        skew_ms: How far in the future an entry may be (default 1000)

    Returns:
        True iff the entry is younger than stale_ms and not more than
        skew_ms in the future. Missing or unparseable entries are False.
    """
    if stale_ms is None:
        stale_ms = settings.typing_stale_ms
    if skew_ms is None:
        skew_ms = settings.typing_skew_ms

    timestamp_ms = to_epoch_ms(timestamp)
    if timestamp_ms is None:
        return False

    age = now_ms - timestamp_ms
    return -skew_ms <= age < stale_ms


class TypingSignaler:
    """Publishes the local participant's typing state for one conversation."""

    def __init__(
        self,
        store: RecordStore,
        conversation_id: str,
        participant_id: str,
        debounce_ms: Optional[int] = None
    ):
        """
        Initialize typing signaler.

        Args:
            store: Shared record store
            conversation_id: Conversation being typed in
            participant_id: Local participant
            debounce_ms: Idle time after the last input before clearing
        """
        self.conversations = ConversationRepository(store)
        self.conversation_id = conversation_id
        self.participant_id = participant_id
        self.debounce_ms = settings.typing_debounce_ms if debounce_ms is None else debounce_ms
        self._timer: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    async def set_typing(self, is_typing: bool) -> bool:
        """
        Publish or clear the typing entry.

        Failures are logged, never raised.

        Returns:
            True if the write succeeded
        """
        try:
            if is_typing:
                await self.conversations.set_typing(self.conversation_id, self.participant_id)
            else:
                await self.conversations.clear_typing(self.conversation_id, self.participant_id)
            return True
        except Exception as e:
            logger.warning(
                f"{StoreWriteFailure.__name__}: typing={is_typing} for "
                f"{self.participant_id} in {self.conversation_id}: {e}"
            )
            return False

    async def note_input(self, text: Optional[str], blocked: bool = False) -> None:
        """
        React to a change of the composer's text.

        Publishes typing for non-blank input in an unblocked conversation,
        otherwise clears it. Every call restarts the idle timer that clears
        the entry once input stops.
        """
        self._cancel_timer()
        active = bool(text and text.strip()) and not blocked
        # The timer is owned before the write yields, so an overlapping call
        # always cancels it.
        if active:
            self._timer = asyncio.create_task(self._clear_after_idle())
        await self.set_typing(active)

    def stop_now(self) -> asyncio.Task:
        """
        Stop signaling immediately.

        The idle timer is cancelled before this returns; the clear itself is
        issued as a background write.

        Returns:
            Task performing the clear
        """
        self._cancel_timer()
        task = asyncio.create_task(self.set_typing(False))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def flush(self) -> None:
        """Wait for background writes issued by stop_now()."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def close(self) -> None:
        """Cancel the idle timer and clear the typing entry."""
        self.stop_now()
        await self.flush()

    def _cancel_timer(self) -> None:
        if self._timer and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _clear_after_idle(self) -> None:
        with contextlib.suppress(asyncio.CancelledError):
            await asyncio.sleep(self.debounce_ms / 1000)
            # Detach before writing so a cancel from note_input cannot
            # interrupt the clear half-way.
            self._timer = None
            await self.set_typing(False)
