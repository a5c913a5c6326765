"""
Data models for chat sessions
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from config import CHAT_CONFIG


class Sender(Enum):
    """Who wrote a message, from this client's point of view"""
    SELF = CHAT_CONFIG["self_label"]
    PEER = CHAT_CONFIG["peer_label"]


def client_timestamp() -> str:
    """ISO-8601 timestamp assigned locally at send or receipt time"""
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ChatMessage:
    """One message in a chat session"""
    chat_id: str
    sender: Sender
    text: str
    timestamp: str

    @property
    def is_mine(self) -> bool:
        return self.sender == Sender.SELF

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chatId": self.chat_id,
            "sender": self.sender.value,
            "text": self.text,
            "timestamp": self.timestamp,
        }


class Transcript:
    """Append-only, arrival-ordered message list for one chat"""

    def __init__(self, chat_id: str):
        self.chat_id = chat_id
        self._messages: List[ChatMessage] = []
        self.listeners: List[Callable[[ChatMessage], None]] = []

    def append(self, message: ChatMessage) -> ChatMessage:
        if message.chat_id != self.chat_id:
            raise ValueError(f"Message for {message.chat_id} appended to transcript {self.chat_id}")
        self._messages.append(message)
        for listener in list(self.listeners):
            listener(message)
        return message

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    @property
    def last(self) -> Optional[ChatMessage]:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(list(self._messages))


@dataclass(frozen=True)
class RecentChat:
    """One row of the recent chats list"""
    chat_id: str
    other_display_name: str
    last_message: Optional[str] = None
    timestamp: Optional[str] = None
    unread_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecentChat":
        if not isinstance(data, dict) or not data.get("chatId"):
            raise ValueError(f"Recent chat without chatId: {data!r}")
        unread = data.get("unreadCount") or data.get("unread") or 0
        try:
            unread_count = int(unread)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Recent chat {data['chatId']!r} has invalid unread count: {unread!r}") from e

        return cls(
            chat_id=str(data["chatId"]),
            other_display_name=str(data.get("otherDisplayName") or data.get("otherUserName") or "Anonymous"),
            last_message=data.get("lastMessage"),
            timestamp=data.get("timestamp"),
            unread_count=unread_count,
        )
