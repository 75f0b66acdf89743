"""
Pydantic schema exports.
Provides record, view and request/response models.
"""
from chatsync.schemas.message import (
    NO_MESSAGES_PREVIEW,
    Attachment,
    Message,
    Draft,
    DraftAttachment,
    DraftResponse,
    MenuPlacement,
    MenuPlacementRequest,
    DeleteResult
)
from chatsync.schemas.user import (
    PresenceRecord,
    ParticipantRecord,
    PresenceResponse,
    BlockResponse
)
from chatsync.schemas.conversation import (
    Conversation,
    ConversationSummary,
    ConversationView,
    VisibleMessage,
    SummaryProjection,
    ConversationCreate,
    ConversationCreateResponse,
    TypingUpdate,
    MarkSeenResponse
)

__all__ = [
    "NO_MESSAGES_PREVIEW",
    "Attachment",
    "Message",
    "Draft",
    "DraftAttachment",
    "DraftResponse",
    "MenuPlacement",
    "MenuPlacementRequest",
    "DeleteResult",
    "PresenceRecord",
    "ParticipantRecord",
    "PresenceResponse",
    "BlockResponse",
    "Conversation",
    "ConversationSummary",
    "ConversationView",
    "VisibleMessage",
    "SummaryProjection",
    "ConversationCreate",
    "ConversationCreateResponse",
    "TypingUpdate",
    "MarkSeenResponse",
]
