"""
Memory layer - Conversation and app permission storage
"""

from src.memory.conversation_store import ConversationDatabase
from src.memory.permission_store import AppPermission, PermissionStore

__all__ = [
    "ConversationDatabase",
    "AppPermission",
    "PermissionStore",
]
