"""
Repository layer exports.
Provides record store access for the application.
"""
from chatsync.repositories.base import BaseRepository
from chatsync.repositories.conversation_repo import ConversationRepository
from chatsync.repositories.summary_repo import SummaryList, SummaryRepository
from chatsync.repositories.user_repo import UserRepository

__all__ = [
    "BaseRepository",
    "ConversationRepository",
    "SummaryList",
    "SummaryRepository",
    "UserRepository",
]
