"""
Domain exceptions for the synchronization engine.

Primary-path failures (send, delete) are raised to the caller. Secondary
bookkeeping failures are wrapped in StoreWriteFailure, logged and swallowed
by the services that perform them.
"""
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from chatsync.schemas.message import Draft


class ChatSyncError(Exception):
    """Base class for all engine errors."""
    pass


class InvalidSendState(ChatSyncError):
    """Send attempted without content, conversation or participants."""
    pass


class SendFailure(ChatSyncError):
    """
    Message commit failed before anything was written.

    Carries the draft so the caller can put it back into the composer.
    """

    def __init__(self, message: str, draft: Optional["Draft"] = None):
        super().__init__(message)
        self.draft = draft


class UploadFailure(SendFailure):
    """Attachment upload failed; the message was not committed."""
    pass


class ConversationMissing(SendFailure):
    """Target conversation record no longer exists."""
    pass


class NotAuthorized(ChatSyncError):
    """Delete-for-everyone requested on somebody else's message."""
    pass


class MessageNotFound(ChatSyncError):
    """No message at the requested position."""
    pass


class StoreWriteFailure(ChatSyncError):
    """Best-effort write failed. Logged only, never retried."""
    pass


class RecordMissing(ChatSyncError):
    """Update or append targeted a record that does not exist."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"Record not found: {collection}/{record_id}")
        self.collection = collection
        self.record_id = record_id
