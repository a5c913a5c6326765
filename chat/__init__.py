"""
Chat sessions: room membership, transcript and the recent chats list
"""

from .controller import ChatSessionController
from .models import ChatMessage, Sender, Transcript, RecentChat
from .recent import RecentChatsClient

__all__ = ["ChatSessionController", "ChatMessage", "Sender", "Transcript", "RecentChat", "RecentChatsClient"]
