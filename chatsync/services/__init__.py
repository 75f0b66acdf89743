"""
Service layer exports.
Provides the synchronization engine's business logic.
"""
from chatsync.services.chat_session import ChatSession
from chatsync.services.conversation_service import ConversationService
from chatsync.services.message_service import MessageService
from chatsync.services.presence_service import PresenceRegistry, PresenceSession, presence_registry
from chatsync.services.summary_service import SummaryProjector, project
from chatsync.services.sync_service import ConversationSynchronizer, render_view
from chatsync.services.typing_service import TypingSignaler, is_partner_typing
from chatsync.services.user_service import UserService

__all__ = [
    "ChatSession",
    "ConversationService",
    "ConversationSynchronizer",
    "MessageService",
    "PresenceRegistry",
    "PresenceSession",
    "SummaryProjector",
    "TypingSignaler",
    "UserService",
    "is_partner_typing",
    "presence_registry",
    "project",
    "render_view",
]
