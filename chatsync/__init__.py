"""
chatsync - message synchronization and presence engine for two-party chat.
"""
__version__ = "1.0.0"
