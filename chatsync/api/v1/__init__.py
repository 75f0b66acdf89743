"""
API v1 router exports.
Provides API endpoint routers.
"""
from chatsync.api.v1 import conversations, messages, users

__all__ = [
    "messages",
    "conversations",
    "users",
]
